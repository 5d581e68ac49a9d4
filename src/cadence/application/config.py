from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from cadence.domain.constants import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TOTAL_CARDS


class AppConfig(BaseSettings):
    """
    Configuration model for cadence.
    Supports loading from:
    1. Environment variables (CADENCE_*)
    2. Config file (~/.config/cadence/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        extra="ignore",
    )

    # Paths
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/cadence/cadence.db"
    )
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".config/cadence/logs")

    # Review defaults
    include_new: bool = True
    session_limit: int | None = None
    default_total_cards: int = DEFAULT_TOTAL_CARDS

    # Server
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

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

        # Find the first existing file
        toml_files = [
            Path.home() / ".config/cadence/config.toml",
            Path.home() / ".cadence.toml",
        ]
        toml_file = next((f for f in toml_files if f.exists()), None)

        # Earlier sources win: CLI overrides, then environment, then the file
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("database_path", mode="before")
    @classmethod
    def resolve_database_path(cls, v: Any) -> Path:
        if str(v) == ":memory:":
            return Path(":memory:")
        return Path(v).expanduser().resolve()

    @field_validator("session_limit")
    @classmethod
    def check_session_limit(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("session_limit must be positive")
        return v


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/cadence/config.toml (if exists)
    3. Environment variables (CADENCE_*)
    4. cli_overrides (passed from Typer); None values are ignored
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
