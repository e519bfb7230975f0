"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class VisionSettings(BaseSettings):
    """Vision analysis API configuration.

    Targets the Anthropic Messages API. A cheap model handles most images,
    a stronger one is used when the cheap one is blocked.
    """

    model_config = SettingsConfigDict(env_prefix="VISION_", populate_by_name=True)

    base_url: str = Field(
        default="https://api.anthropic.com/v1",
        description="Vision API base URL",
    )
    api_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("VISION_API_KEY", "ANTHROPIC_API_KEY"),
        description="Vision API key",
    )
    api_version: str = Field(
        default="2023-06-01",
        description="Value of the anthropic-version header",
    )
    fast_model: str = Field(
        default="claude-3-haiku-20240307",
        description="Model tried first for every image",
    )
    fallback_model: str = Field(
        default="claude-3-sonnet-20240229",
        description="Model used when the fast model output is blocked",
    )
    timeout: float = Field(
        default=120.0,
        description="Request timeout in seconds",
    )
    max_tokens: int = Field(
        default=1024,
        description="Maximum tokens in the analysis reply",
    )


class EmbeddingSettings(BaseSettings):
    """Embedding service configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_", populate_by_name=True)

    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Embedding service base URL",
    )
    api_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("EMBEDDING_API_KEY", "OPENAI_API_KEY"),
        description="Embedding API key",
    )
    model: str = Field(
        default="text-embedding-ada-002",
        description="Embedding model name",
    )
    batch_size: int = Field(
        default=32,
        description="Batch size for embedding requests",
    )
    timeout: float = Field(
        default=60.0,
        description="Request timeout in seconds",
    )


class StoreSettings(BaseSettings):
    """Embedded vector database configuration."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    path: str = Field(
        default="./data/images_db",
        description="On-disk database location (':memory:' for a throwaway store)",
    )
    url: str | None = Field(
        default=None,
        description="Qdrant server URL; overrides the embedded database when set",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant server API key",
    )
    collection_name: str = Field(
        default="images",
        description="Collection holding image entries",
    )
    vector_size: int = Field(
        default=1536,
        description="Embedding dimensions stored in the collection",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=3000,
        description="API server port",
    )
    upload_dir: Path = Field(
        default=Path("uploads"),
        description="Directory receiving uploaded images",
    )
    search_limit: int = Field(
        default=30,
        description="Default number of search results over HTTP",
    )
    supported_formats: list[str] = Field(
        default=["jpg", "jpeg", "png", "webp"],
        description="Image formats accepted for ingestion",
    )

    # Nested settings
    vision: VisionSettings = Field(default_factory=VisionSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
