"""Configuration management using Pydantic Settings."""

from pathlib import Path
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from secure_cookie_proxy.exceptions import ConfigurationError

DEFAULT_UNAUTHORIZED_STATUS = 401
KEYRING_SERVICE = "HttpProxySecureCookies"


def get_default_cookie_dir() -> Path:
    """Cookie files live next to the project the proxy is started from."""
    return Path.cwd() / ".proxy-cookies"


class Settings(BaseSettings):
    """Process-wide settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="SECURE_COOKIE_PROXY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Credential storage
    cookie_dir: Path = Field(
        default_factory=get_default_cookie_dir,
        description="Directory for cookie files when no system keychain is available",
    )
    use_keyring: bool = Field(default=True, description="Prefer the system keychain when available")
    keyring_service: str = Field(default=KEYRING_SERVICE, description="Keychain service name")

    # Server
    host: str = Field(default="127.0.0.1", description="Address the proxy listens on")
    port: int = Field(default=8080, description="Port the proxy listens on")
    request_timeout: float = Field(default=60.0, description="Upstream request timeout in seconds")

    # Path prefix -> target URL
    routes: dict[str, str] = Field(default_factory=dict, description="Proxy routes")

    @field_validator("cookie_dir", mode="before")
    @classmethod
    def expand_cookie_dir(cls, v):
        """Expand user home directory in cookie_dir."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v


class ProxyTargetConfig(BaseModel):
    """
    Options for one proxied upstream target.

    Cookie handling options are named fields. Everything the transport needs
    beyond that goes into ``proxy_options`` untouched.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    target: str
    keychain_account: Optional[str] = None
    unauthorized_status_code: frozenset[int] = frozenset({DEFAULT_UNAUTHORIZED_STATUS})
    cookie_path_rewrite: Optional[str] = None
    cookie_rewrite: Optional[Callable[[dict[str, str]], dict[str, str]]] = None

    # Transport pass-through
    secure: bool = False
    change_origin: bool = True
    path_rewrite: dict[str, str] = Field(default_factory=dict)
    proxy_options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("target")
    @classmethod
    def check_target(cls, v: str) -> str:
        if "://" not in v:
            raise ValueError(f"target must include a scheme: {v!r}")
        return v.rstrip("/")

    @field_validator("unauthorized_status_code", mode="before")
    @classmethod
    def normalize_status_codes(cls, v):
        """Accept a single status code or any iterable of them."""
        if isinstance(v, (int, str)):
            return frozenset({int(v)})
        return frozenset(int(code) for code in v)

    @property
    def account(self) -> str:
        """Credential account key: the override, or the target without its scheme."""
        return self.keychain_account or self.target.split("://", 1)[1]

    @property
    def ws(self) -> bool:
        """Whether WebSocket upgrades are proxied to this target."""
        return self.target.startswith("ws")

    @property
    def cookie_path(self) -> str:
        """Path attribute used when backfilling cookies to the client."""
        return self.cookie_path_rewrite if isinstance(self.cookie_path_rewrite, str) else "/"

    @classmethod
    def from_value(cls, value: Union[str, dict, "ProxyTargetConfig"]) -> "ProxyTargetConfig":
        """
        Build a target config from a URL string, a dict of options, or an instance.

        Raises:
            ConfigurationError: If the options are invalid.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            value = {"target": value}
        try:
            return cls(**value)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e
        except TypeError as e:
            raise ConfigurationError(f"Invalid proxy options: {e}") from e


def load_settings() -> Settings:
    """Load settings from environment and .env file."""
    settings = Settings()
    return settings
