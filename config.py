"""
Configuration module for the Returns Insights API.
Loads settings from environment variables with OpenAI / Azure OpenAI support.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_host: str = Field(
        default="0.0.0.0",
        alias="APP_HOST",
        description="Host to bind the application"
    )
    app_port: int = Field(
        default=4000,
        alias="APP_PORT",
        description="Port to bind the application"
    )
    client_origin: str = Field(
        default="http://localhost:3000",
        alias="CLIENT_ORIGIN",
        description="Dashboard origin allowed by CORS"
    )

    # Data Store Configuration
    database_url: str = Field(
        default="sqlite:///./data/returns.db",
        alias="DATABASE_URL",
        description="SQLAlchemy database URL (PostgreSQL in production)"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    # Authentication
    auth_disabled: bool = Field(
        default=True,
        alias="AUTH_DISABLED",
        description="Use x-demo-* headers instead of session tokens"
    )
    session_ttl_hours: int = Field(
        default=24,
        alias="SESSION_TTL_HOURS",
        description="Lifetime of login session tokens"
    )

    # External classifier (OpenAI or Azure OpenAI)
    openai_api_key: str = Field(
        default="",
        alias="OPENAI_API_KEY",
        description="OpenAI API key (or Azure OpenAI key when an endpoint is set)"
    )
    openai_model: str = Field(
        default="gpt-5-codex",
        alias="OPENAI_MODEL",
        description="Model used for categorization and insight narratives"
    )
    azure_openai_endpoint: str = Field(
        default="",
        alias="AZURE_OPENAI_ENDPOINT",
        description="Azure OpenAI endpoint URL; enables the Azure client when set"
    )
    azure_openai_deployment: str = Field(
        default="gpt-4o",
        alias="AZURE_OPENAI_DEPLOYMENT",
        description="Azure OpenAI deployment name"
    )
    azure_openai_api_version: str = Field(
        default="2025-03-01-preview",
        alias="AZURE_OPENAI_API_VERSION",
        description="Azure OpenAI API version (requires 2025-03-01-preview or later for Responses API)"
    )
    classifier_timeout_seconds: float = Field(
        default=20.0,
        alias="CLASSIFIER_TIMEOUT_SECONDS",
        description="Upper bound for a single classifier call before falling back"
    )

    # Insight generation
    insight_threshold: int = Field(
        default=5,
        alias="INSIGHT_THRESHOLD",
        description="Minimum returns required before an insight is generated"
    )
    auto_insight_threshold: int = Field(
        default=10,
        alias="AUTO_INSIGHT_THRESHOLD",
        description="Threshold used after a return submission and by the generate-insight endpoint"
    )
    bulk_actions_enabled: bool = Field(
        default=False,
        alias="BULK_ACTIONS_ENABLED",
        description="Allow creating action items for every recommendation at once"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


# Global settings instance
settings = Settings()
