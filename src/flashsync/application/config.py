from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from flashsync.domain.constants import (
    DEAD_LETTER_AFTER,
    DEFAULT_NEW_CARD_LIMIT,
    REACHABILITY_TIMEOUT,
    REQUEST_TIMEOUT,
    SYNC_INTERVAL_SECONDS,
)


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/flashsync/config.toml",
        Path.home() / ".flashsync.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for flashsync.
    Supports loading from:
    1. Environment variables (FLASHSYNC_*)
    2. Config file (~/.config/flashsync/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="FLASHSYNC_",
        extra="ignore",
    )

    # Local storage
    db_path: Path = Field(default_factory=lambda: Path.home() / ".local/share/flashsync/flashsync.db")

    # Remote store
    remote_backend: Literal["http", "memory"] = "http"
    remote_url: str = "http://localhost:54321"
    remote_api_key: str | None = None
    review_table: str = "review_states"
    deck_table: str = "decks"
    request_timeout: float = REQUEST_TIMEOUT
    reachability_timeout: float = REACHABILITY_TIMEOUT

    # Sync
    sync_interval_seconds: float = Field(default=SYNC_INTERVAL_SECONDS, gt=0)
    dead_letter_after: int = Field(default=DEAD_LETTER_AFTER, ge=1)

    # Sessions
    new_card_limit: int = Field(default=DEFAULT_NEW_CARD_LIMIT, ge=0)

    # Server
    server_host: str = "127.0.0.1"
    server_port: int = 8777

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # Init settings (CLI overrides) first so they win, then env, then the file
        toml_file = next((f for f in config_files() if f.exists()), None)
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("db_path", mode="before")
    @classmethod
    def resolve_db_path(cls, v: Any) -> Path:
        if str(v) == ":memory:":
            return Path(":memory:")
        return Path(v).expanduser().resolve()

    @field_validator("remote_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/flashsync/config.toml (if exists)
    3. Environment variables (FLASHSYNC_*)
    4. cli_overrides (passed from Typer), None values ignored
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
