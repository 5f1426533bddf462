"""Configuration management for the circulation service."""

import os
from dataclasses import dataclass, field
from functools import lru_cache


@dataclass
class DatabaseConfig:
    """SQLAlchemy engine configuration."""

    url: str = "sqlite:///./library.db"
    echo: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


@dataclass
class LibraryConfig:
    """Main configuration for the circulation service."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    log_level: str = "INFO"
    log_format: str = "standard"
    conflict_retries: int = 3

    @classmethod
    def from_env(cls) -> "LibraryConfig":
        """Create config from environment variables."""
        database = DatabaseConfig(
            url=os.getenv("LIBRARY_DATABASE_URL", "sqlite:///./library.db"),
            echo=os.getenv("LIBRARY_DB_ECHO", "false").lower() == "true",
        )

        return cls(
            database=database,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
            conflict_retries=int(os.getenv("LIBRARY_CONFLICT_RETRIES", "3")),
        )


@lru_cache
def get_config() -> LibraryConfig:
    """Return the process-wide configuration, read once from the environment."""
    return LibraryConfig.from_env()
