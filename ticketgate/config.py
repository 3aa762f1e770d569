"""TicketGate — Process configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. System config: /etc/ticketgate/config.yaml
    3. User config:   ~/.ticketgate/config.yaml
    4. An explicit ``--config`` file
    5. Environment variables prefixed with TICKETGATE_

Call ``Settings.load()`` once at process startup and pass the instance to
``Runtime``.  Values that staff change at run time (ticket category, product
channel) live in the repository ``settings`` table instead and are re-read by
``Runtime.reconfigure()``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class LimiterConfig(BaseModel):
    points: Annotated[int, Field(ge=1, le=100_000)]
    window_seconds: Annotated[float, Field(gt=0, le=86_400)]


def _default_limiters() -> dict[str, LimiterConfig]:
    return {
        "commands": LimiterConfig(points=5, window_seconds=60),
        "tickets": LimiterConfig(points=1, window_seconds=300),
        "interactions": LimiterConfig(points=10, window_seconds=60),
    }


class SecurityConfig(BaseModel):
    admin_ids: list[str] = Field(
        default_factory=list,
        description="User IDs allowed to run administrative operations.",
    )
    encryption_key: str | None = Field(
        default=None,
        description=(
            "Hex-encoded 32-byte key for digital payload encryption. "
            "None = generate a throwaway key for this process (payloads become unreadable after restart)."
        ),
    )
    signing_key: str | None = Field(
        default=None,
        description="Hex-encoded HMAC key for signed tokens. None = per-process random key.",
    )
    token_ttl_seconds: Annotated[int, Field(ge=1, le=604_800)] = 3600
    limiters: dict[str, LimiterConfig] = Field(default_factory=_default_limiters)
    new_account_age_days: Annotated[float, Field(ge=0, le=365)] = Field(
        default=7,
        description="Accounts younger than this are flagged (advisory only).",
    )
    integrity_check_interval_seconds: Annotated[float, Field(ge=0, le=86_400)] = Field(
        default=300,
        description="Seconds between background integrity checks. 0 disables the loop.",
    )
    integrity_paths: list[Path] = Field(
        default_factory=list,
        description="Files/directories hashed for tamper evidence. Empty = the installed ticketgate package.",
    )

    @field_validator("admin_ids", mode="before")
    @classmethod
    def split_admin_ids(cls, v: object) -> object:
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v


class SessionConfig(BaseModel):
    category_id: str | None = Field(
        default=None,
        description="Parent category for ticket channels. Overridden by the 'ticket_category_id' setting.",
    )
    idle_timeout_hours: Annotated[float, Field(gt=0, le=720)] = 24
    close_grace_seconds: Annotated[float, Field(ge=0, le=600)] = Field(
        default=10,
        description="Delay before deleting a channel after an explicit close.",
    )
    idle_grace_seconds: Annotated[float, Field(ge=0, le=600)] = Field(
        default=30,
        description="Delay before deleting a channel after an idle-timeout close.",
    )
    orphan_sweep_interval_seconds: Annotated[float, Field(ge=0, le=86_400)] = Field(
        default=3600,
        description="Seconds between orphan reconciliation sweeps. 0 disables the sweeper.",
    )
    history_limit: Annotated[int, Field(ge=1, le=1000)] = 100
    transcript_dir: Path | None = Field(
        default=None,
        description="Directory for archived transcripts. None = transcripts are not written to disk.",
    )

    @property
    def idle_timeout_seconds(self) -> float:
        return self.idle_timeout_hours * 3600


class CommerceConfig(BaseModel):
    confirmation_timeout_seconds: Annotated[float, Field(gt=0, le=900)] = 60
    max_catalog_items: Annotated[int, Field(ge=1, le=500)] = 30
    currency: str = "BRL"
    products_channel_id: str | None = None


class StorageConfig(BaseModel):
    db_path: Path = Path("~/.ticketgate/ticketgate.db")
    security_event_retention_days: Annotated[int, Field(ge=1, le=3650)] = 30


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=41000, ge=1024, le=65535)
    api_token: str | None = Field(
        default=None,
        description="Token required in X-TicketGate-Token on every admin request. None = no token check.",
    )


class PlatformConfig(BaseModel):
    provider: str = Field(
        default="memory",
        description=(
            "Channel provider: 'memory' (in-process, local runs) or a fully-qualified "
            "class path such as 'mypackage.discord:DiscordChannelProvider'."
        ),
    )
    bot_user_id: str = "ticketgate"


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None
    audit_file: Path | None = Path("~/.ticketgate/audit.ndjson")


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TICKETGATE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    security: SecurityConfig = Field(default_factory=SecurityConfig)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    commerce: CommerceConfig = Field(default_factory=CommerceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("storage", mode="before")
    @classmethod
    def expand_storage_paths(cls, v: object) -> object:
        if isinstance(v, dict) and isinstance(v.get("db_path"), str):
            v["db_path"] = Path(v["db_path"]).expanduser()
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [
            Path("/etc/ticketgate/config.yaml"),
            Path.home() / ".ticketgate" / "config.yaml",
        ]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                import yaml  # lazy import, only needed when a file exists

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
