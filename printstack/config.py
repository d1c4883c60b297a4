"""Configuration management for PrintStack."""

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from printstack.schema.entities import APPLICATION_ID, DEFAULT_CATEGORIES, DEFAULT_MATERIAL_TYPES

ENVIRONMENTS = ("development", "production", "test")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PRINTSTACK_",
        extra="ignore",
    )

    # Storage
    environment: str = Field(default="production", description="Storage environment: development, production or test")
    data_dir: Path = Field(default=Path("data"), description="Directory holding the key-value store file")
    store_file: str = Field(default="printstack.json", description="Key-value store file name inside data_dir")

    # Export metadata
    application_name: str = Field(default=APPLICATION_ID, description="Application identifier written into exports")

    # Analytics
    low_stock_threshold_grams: float = Field(default=100.0, description="Remaining grams under which a spool is low")
    variance_tolerance_percent: float = Field(default=5.0, description="Default tolerance for variance quality")
    top_models_limit: int = Field(default=5, description="Number of most printed models in statistics")

    # Seed sets for a fresh inventory
    default_material_types: List[str] = Field(default_factory=lambda: list(DEFAULT_MATERIAL_TYPES))
    default_categories: List[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))

    log_level: str = Field(default="INFO", description="Log level for the command line")

    @field_validator("environment")
    @classmethod
    def _check_environment(cls, value: str) -> str:
        value = value.strip().lower()
        aliases = {"dev": "development", "prod": "production"}
        value = aliases.get(value, value)
        if value not in ENVIRONMENTS:
            raise ValueError(f"environment must be one of {', '.join(ENVIRONMENTS)}")
        return value

    @property
    def namespace(self) -> str:
        """Key prefix isolating this environment's data."""
        return f"printstack_{self.environment}_"

    @property
    def store_path(self) -> Path:
        """Full path of the file-backed key-value store."""
        return Path(self.data_dir) / self.store_file


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure(settings: Optional[Settings]) -> None:
    """Override global settings (None resets to environment defaults)."""
    global _settings
    _settings = settings
