"""Hatchery configuration management using pydantic-settings."""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from project root so HATCHERY_* overrides are available
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


class GeneralSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HATCHERY_")
    db_url: str = Field(default="postgresql+asyncpg://localhost/hatchery")
    db_echo: bool = False
    log_level: str = "INFO"


class SchedulerSettings(BaseSettings):
    """Cadence of the daemon that stands in for an external cron trigger."""

    interval_minutes: int = 60
    advance_phases: bool = True
    generate_tasks: bool = True


class CategorySettings(BaseSettings):
    """Job-name keywords used when a job has no explicit category."""

    open_shop: list[str] = Field(default_factory=lambda: ["open shop", "open", "start"])
    close_shop: list[str] = Field(
        default_factory=lambda: ["close shop", "close up shop", "close", "end", "shutdown"]
    )

    def as_mapping(self) -> dict[str, list[str]]:
        return {"open_shop": list(self.open_shop), "close_shop": list(self.close_shop)}


class ApiSettings(BaseSettings):
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )


class Settings(BaseSettings):
    """Top-level settings assembled from subsections."""

    general: GeneralSettings = Field(default_factory=GeneralSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    categories: CategorySettings = Field(default_factory=CategorySettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings from TOML config file, falling back to defaults."""
        if config_path is None:
            config_path = Path.home() / ".config/hatchery/config.toml"

        if config_path.exists():
            import toml

            data = toml.load(config_path)
            return cls(
                general=GeneralSettings(**data.get("general", {})),
                scheduler=SchedulerSettings(**data.get("scheduler", {})),
                categories=CategorySettings(**data.get("categories", {})),
                api=ApiSettings(**data.get("api", {})),
            )

        return cls()


# Module-level singleton
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
