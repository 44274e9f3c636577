"""Configuration management for appupgrade."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from appupgrade.errors import ConfigError

CONFIG_FILE_NAME = "appupgrade.yaml"
# Later files override earlier ones, so the home directory copy wins.
DEFAULT_CONFIG_FILES = [Path(CONFIG_FILE_NAME), Path.home() / CONFIG_FILE_NAME]


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class ServerSettings(_Section):
    bind: str = Field(default="", description="Interface to bind; blank binds all")
    port: int = Field(default=3007, description="HTTP port")
    allowed_origins: str = Field(
        default="*",
        alias="allowed-origins",
        description="Comma-separated CORS origins",
    )

    @property
    def origins(self) -> tuple[str, ...]:
        return tuple(o.strip() for o in self.allowed_origins.split(",") if o.strip())


class LogSettings(_Section):
    level: str = Field(default="info", description="Logging level")


class GitHubSettings(_Section):
    api_url: str = Field(default="https://api.github.com", alias="api-url")
    extension: str = Field(default=".deb", description="Installable asset suffix")
    strict_decode: bool = Field(
        default=False,
        alias="strict-decode",
        description="Fail instead of reporting zero releases on an undecodable feed",
    )


class DpkgSettings(_Section):
    binary: str = Field(default="dpkg")
    query_binary: str = Field(default="dpkg-query", alias="query-binary")


class Settings(BaseSettings):
    """Application settings loaded from YAML, .env and environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="APPUPGRADE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file=DEFAULT_CONFIG_FILES,
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    dpkg: DpkgSettings = Field(default_factory=DpkgSettings)

    # Package name -> GitHub repository URL
    packages: dict[str, str] = Field(default_factory=dict)

    environment: str = Field(default="production", description="Environment name")
    http_timeout: float = Field(default=30.0, gt=0)
    command_timeout: float = Field(default=120.0, gt=0)
    install_timeout: float = Field(default=600.0, gt=0)
    download_dir: str | None = Field(default=None, description="Scratch directory for downloads")
    keep_artifacts: bool = Field(default=False)

    @field_validator("packages", mode="before")
    @classmethod
    def _none_is_empty(cls, value: object) -> object:
        return {} if value is None else value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


def load_settings(config_file: str | None = None) -> Settings:
    """Build settings, reading *config_file* instead of the default search path."""
    try:
        if config_file is None:
            return Settings()

        path = Path(config_file).expanduser()
        if not path.is_file():
            raise ConfigError(f"config file not found: {config_file}")

        class _FileSettings(Settings):
            model_config = SettingsConfigDict(yaml_file=path)

        return _FileSettings()
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
