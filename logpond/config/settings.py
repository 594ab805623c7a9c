from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def replace_extension(path: Path, extension: str) -> Path:
    """Swap a trailing ``.log`` for ``extension``, or append it."""
    if path.suffix == ".log":
        return path.with_suffix(extension)
    return path.with_name(path.name + extension)


class InputSettings(BaseSettings):
    """Access log input configuration settings."""

    model_config = SettingsConfigDict(env_prefix="INPUT_", env_file=".env", extra="ignore")

    log_path: Path = Field(
        default=Path("access.log"),
        description="Path to the access log file to import",
    )
    origin: str = Field(
        default="http://localhost",
        description="Base origin used to resolve request paths and relative referers",
    )
    encoding: str = Field(default="utf-8", description="Text encoding of the log file")

    @field_validator("origin")
    @classmethod
    def validate_origin(cls, value: str) -> str:
        """Ensure the origin is an absolute http(s) URL."""
        if not value.startswith(("http://", "https://")):
            raise ValueError(
                "Origin must be an absolute http(s) URL. Example: https://mydomain.com"
            )
        return value


class OutputSettings(BaseSettings):
    """Output database and error file configuration settings."""

    model_config = SettingsConfigDict(env_prefix="OUTPUT_", env_file=".env", extra="ignore")

    db_path: Path | None = Field(
        default=None,
        description="DuckDB database file. Defaults to the log path with a .db extension",
    )
    error_path: Path | None = Field(
        default=None,
        description="Rejected lines file. Defaults to the log path with a .err extension",
    )
    table: str = Field(default="log", description="Destination table name")
    batch_size: int = Field(default=1000, ge=1, description="Rows per insert batch")
    resume: bool = Field(
        default=True,
        description="Skip lines that are not newer than the latest row already stored.",
    )


class UserAgentSettings(BaseSettings):
    """User-agent ruleset configuration settings."""

    model_config = SettingsConfigDict(env_prefix="USERAGENT_", env_file=".env", extra="ignore")

    rules_path: Path | None = Field(
        default=None,
        description="Path to a uap-core style regexes.yaml. Defaults to the bundled ruleset",
    )
    validate_rules_path: bool = Field(
        default=False,
        description="Validate that the ruleset file exists",
    )

    @model_validator(mode="after")
    def validate_rules_exists(self) -> "UserAgentSettings":
        """Ensure the ruleset file exists if validation is enabled."""
        if self.validate_rules_path and self.rules_path and not self.rules_path.exists():
            raise ValueError(f"User-agent ruleset not found: {self.rules_path}")
        return self


class GeoIPSettings(BaseSettings):
    """GeoIP range dataset configuration settings."""

    model_config = SettingsConfigDict(env_prefix="GEOIP_", env_file=".env", extra="ignore")

    db_path: Path | None = Field(
        default=None,
        description="Path to the IP range dataset (csv, IPinfo Lite mmdb or GeoLite2 Country mmdb)",
    )
    format: Literal["auto", "csv", "ipinfo", "geolite2"] = Field(
        default="auto",
        description="Dataset format. 'auto' picks csv for .csv files and ipinfo for .mmdb files",
    )
    asn_db_path: Path | None = Field(
        default=None,
        description="GeoLite2 ASN database, only used with the geolite2 format",
    )
    validate_db_path: bool = Field(
        default=False,
        description="Validate that the GeoIP database file exists (set to True for production)"
    )

    @model_validator(mode="after")
    def validate_geoip_db_exists(self) -> "GeoIPSettings":
        """Ensure GeoIP database file exists if validation is enabled."""
        if self.validate_db_path and self.db_path and not self.db_path.exists():
            raise ValueError(f"GeoIP database file not found: {self.db_path}")
        return self


class PipelineSettings(BaseSettings):
    """Enrichment pipeline configuration settings."""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_", env_file=".env", extra="ignore")

    workers: int = Field(
        default=1,
        ge=1,
        description="Threads used for user-agent and geo enrichment. 1 runs inline.",
    )
    progress_every: int = Field(
        default=50_000,
        ge=1,
        description="Log a progress line every N processed lines",
    )


class Settings(BaseSettings):
    """Main application settings.

    Configuration precedence (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values

    Example .env file:
        INPUT_LOG_PATH=/var/log/nginx/access.log
        INPUT_ORIGIN=https://mydomain.com
        GEOIP_DB_PATH=/data/ipinfo_lite.mmdb
        OUTPUT_BATCH_SIZE=5000
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    name: str = Field(default="logpond", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    input: InputSettings = Field(default_factory=InputSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    useragent: UserAgentSettings = Field(default_factory=UserAgentSettings)
    geoip: GeoIPSettings = Field(default_factory=GeoIPSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value

    @property
    def db_path(self) -> Path:
        """Resolved output database path."""
        return self.output.db_path or replace_extension(self.input.log_path, ".db")

    @property
    def error_path(self) -> Path:
        """Resolved error file path."""
        return self.output.error_path or replace_extension(self.input.log_path, ".err")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    This function is cached to ensure we only parse configuration once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
