"""Configuration models for the transcript shipper."""

import platform
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from transcript_sync import __version__

# The backend rejects chunks larger than 16MB; 14MB leaves headroom for
# JSON encoding overhead.
DEFAULT_MAX_CHUNK_BYTES = 14 * 1024 * 1024

MIN_API_KEY_LENGTH = 20


def build_user_agent(version: str = __version__) -> str:
    """Build a User-Agent string: transcript-sync/<version> (<os>; <arch>)."""
    if not version:
        version = "dev"
    return f"transcript-sync/{version} ({platform.system().lower()}; {platform.machine().lower()})"


class BackendConfig(BaseModel):
    """Configuration for the sync backend connection."""

    backend_url: str = Field(default="", description="Backend base URL (http or https)")
    api_key: str = Field(default="", description="API key sent as a bearer token")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    user_agent: str = Field(
        default_factory=build_user_agent, description="User-Agent header for every request"
    )
    max_retries: int = Field(
        default=5, ge=0, le=20, description="Retries for transient transport errors"
    )
    base_delay: float = Field(default=1.0, ge=0.0, description="Initial backoff delay in seconds")
    max_delay: float = Field(default=60.0, ge=0.0, description="Maximum backoff delay in seconds")

    @field_validator("backend_url")
    @classmethod
    def validate_backend_url(cls, v: str) -> str:
        """Require an http(s) URL with a host. Empty means not configured."""
        if not v:
            return v
        parsed = urlparse(v)
        if not parsed.scheme:
            raise ValueError("url must include scheme (http:// or https://)")
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"url scheme must be http or https, got {parsed.scheme!r}")
        if not parsed.netloc:
            raise ValueError("url must include a host")
        return v.rstrip("/")

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Catch truncated or corrupted keys. Empty means not configured."""
        if not v:
            return v
        if len(v) < MIN_API_KEY_LENGTH:
            raise ValueError(f"api key too short (minimum {MIN_API_KEY_LENGTH} characters)")
        if any(c in v for c in " \t\n\r"):
            raise ValueError("api key contains invalid whitespace characters")
        return v

    @property
    def is_configured(self) -> bool:
        """True when both the backend URL and API key are set."""
        return bool(self.backend_url and self.api_key)

    @property
    def is_localhost(self) -> bool:
        """True when the backend points at the local machine."""
        host = urlparse(self.backend_url).hostname or ""
        return host in ("localhost", "127.0.0.1", "::1")


class RedactionPatternConfig(BaseModel):
    """A user-supplied redaction pattern."""

    name: str = Field(default=..., description="Human readable pattern name")
    pattern: str | None = Field(default=None, description="Regex matched against string values")
    field_pattern: str | None = Field(
        default=None, description="Regex matched against the enclosing JSON field name"
    )
    type: str = Field(default=..., description="Label used in the [REDACTED:<TYPE>] marker")
    capture_group: int = Field(
        default=0, ge=0, description="Only redact this capture group (0 = whole match)"
    )


class RedactionConfig(BaseModel):
    """Configuration for secret redaction."""

    enabled: bool = Field(default=False, description="Redact lines before upload")
    use_default_patterns: bool = Field(
        default=True, description="Prepend the built-in patterns to user patterns"
    )
    patterns: list[RedactionPatternConfig] = Field(
        default_factory=list, description="User-supplied patterns, applied after built-ins"
    )


class SyncConfig(BaseModel):
    """Configuration for the sync engine."""

    max_chunk_bytes: int = Field(
        default=DEFAULT_MAX_CHUNK_BYTES, gt=0, description="Byte budget per uploaded chunk"
    )
    max_sync_iterations: int = Field(
        default=10, ge=1, le=100, description="BFS passes per sync call"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stderr.",
    )

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Accept "warn" as an alias and reject unknown levels."""
        level = v.strip().upper() or "INFO"
        if level == "WARN":
            level = "WARNING"
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(
                f"invalid log level {v!r}: must be debug, info, warning, error or critical"
            )
        return level


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the TRANSCRIPT_SYNC_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="TRANSCRIPT_SYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    backend: BackendConfig = Field(default_factory=BackendConfig)
    redaction: RedactionConfig = Field(default_factory=RedactionConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
