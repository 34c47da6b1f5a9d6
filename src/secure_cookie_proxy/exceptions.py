"""Exceptions raised by secure-cookie-proxy."""


class CookieProxyError(Exception):
    """Base class for all secure-cookie-proxy errors."""


class CookieFormatError(CookieProxyError):
    """A cookie string or cookie name could not be parsed or serialized."""


class CredentialStoreError(CookieProxyError):
    """Reading or writing the credential store failed."""

    def __init__(self, message: str, account: str = ""):
        super().__init__(message)
        self.account = account


class PromptBusyError(CookieProxyError):
    """Another interactive prompt is already waiting for the operator."""


class ConfigurationError(CookieProxyError):
    """A proxy target was configured with invalid options."""
