"""Configuration settings for the player relationship service."""

from __future__ import annotations

from typing import List

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()

SUPPORTED_CACHE_BACKENDS: List[str] = ["memory", "redis"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Session store (PostgreSQL)
    postgres_db: str = Field(default="playertracker")
    postgres_user: str = Field(default="playertracker")
    postgres_password: str = Field(default="dev_password")
    postgres_host: str = Field(default="postgres")
    postgres_port: int = Field(default=5432)

    @property
    def database_url(self) -> str:
        """Construct async database URL from components."""
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    # Graph store (Neo4j)
    neo4j_uri: str = Field(default="bolt://neo4j:7687")
    neo4j_user: str = Field(default="neo4j")
    neo4j_password: str = Field(default="dev_password")
    neo4j_database: str = Field(default="neo4j")
    neo4j_max_connection_pool_size: int = Field(default=50)
    neo4j_connection_timeout_seconds: float = Field(default=15.0)

    # Cache store
    cache_backend: str = Field(
        default="memory", description="Cache backend: 'memory' or 'redis'"
    )
    redis_url: str = Field(default="redis://redis:6379/0")
    cache_key_prefix: str = Field(default="bf1942:relationships:")
    cache_max_entries: int = Field(default=5000)

    # Relationship ETL
    etl_round_page_size: int = Field(
        default=100, description="Rounds fetched per page from the session store"
    )
    etl_flush_every_rounds: int = Field(
        default=100, description="Flush accumulated pairs every N rounds"
    )
    etl_flush_pair_threshold: int = Field(
        default=10000, description="Flush early once this many pairs are pending"
    )
    etl_write_batch_size: int = Field(
        default=1000, description="Pairs per graph write transaction"
    )

    # Community detection
    community_min_sessions: int = Field(
        default=3, description="Minimum sessionCount for a strong edge"
    )
    community_min_size: int = Field(default=3)

    # Squad finder
    online_window_minutes: int = Field(
        default=15, description="A player seen within this window counts as online"
    )

    # Application
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    @field_validator(
        "etl_round_page_size",
        "etl_flush_every_rounds",
        "etl_flush_pair_threshold",
        "etl_write_batch_size",
        "community_min_sessions",
        "community_min_size",
        "cache_max_entries",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Reject zero or negative sizes and thresholds."""
        if v < 1:
            raise ValueError(f"value must be a positive integer, got {v}")
        return v

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        """Only the in-process and Redis backends are supported."""
        backend = v.strip().lower()
        if backend not in SUPPORTED_CACHE_BACKENDS:
            raise ValueError(
                f"Unsupported cache backend '{v}'. "
                f"Expected one of: {', '.join(SUPPORTED_CACHE_BACKENDS)}"
            )
        return backend

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="forbid",
    )


def get_settings() -> Settings:
    """Get application settings instance."""
    return Settings()


# Create a global settings instance lazily
settings: Settings | None = None


def get_global_settings() -> Settings:
    """Get or create the global settings instance."""
    global settings
    if settings is None:
        settings = get_settings()
    return settings
