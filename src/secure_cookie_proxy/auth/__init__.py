"""
Cookie handling for secure-cookie-proxy.

Provides:
- Cookie header codec
- Keychain / file credential storage
- Interactive cookie acquisition
- Per-target cookie sessions
"""

from secure_cookie_proxy.auth.cookies import (
    Cookies,
    encode,
    decode,
    decode_set_cookie,
    serialize_cookie,
    strip_cookie_label,
)
from secure_cookie_proxy.auth.storage import (
    CredentialStore,
    KeyringCredentialStore,
    FileCredentialStore,
    detect_credential_store,
)
from secure_cookie_proxy.auth.prompt import (
    SecretPrompt,
    RichSecretPrompt,
    PromptCoordinator,
)
from secure_cookie_proxy.auth.session import (
    CookieSession,
    SessionState,
)

__all__ = [
    # Codec
    "Cookies",
    "encode",
    "decode",
    "decode_set_cookie",
    "serialize_cookie",
    "strip_cookie_label",
    # Storage
    "CredentialStore",
    "KeyringCredentialStore",
    "FileCredentialStore",
    "detect_credential_store",
    # Prompt
    "SecretPrompt",
    "RichSecretPrompt",
    "PromptCoordinator",
    # Session
    "CookieSession",
    "SessionState",
]
