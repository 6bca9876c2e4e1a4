"""
API Configuration Management

Environment-aware settings for the inbox assistant API, loaded from the
process environment and an optional .env file.

Design Considerations:
- Environment-specific documentation exposure
- Business identity used in drafted replies is configuration, not code
- Model and embedding backends are selected by the pipeline's own
  environment variables; only their names are surfaced here
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class EnvironmentType(str, Enum):
    """Valid environment types for configuration context."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class APISettings(BaseSettings):
    """
    API configuration settings with environment-specific defaults and validation.
    """
    # Environment Configuration
    ENVIRONMENT: EnvironmentType = Field(
        default=EnvironmentType.DEVELOPMENT,
        description="Runtime environment context"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    # API Settings
    API_TITLE: str = Field(
        default="Inbox Assistant API",
        description="API title for documentation"
    )
    API_DESCRIPTION: str = Field(
        default="Classification, similar-message discovery and reply drafting for a small-business inbox",
        description="API description for documentation"
    )
    API_VERSION: str = Field(
        default="1.0.0",
        description="API version"
    )

    # Tenant and business identity
    DEFAULT_USER_ID: str = Field(
        default="demo",
        description="User scope applied when a request carries no X-User-Id header"
    )
    BUSINESS_NAME: str = Field(
        default="Our Shop",
        description="Business name used in drafted replies"
    )
    SIGNATURE: Optional[str] = Field(
        default=None,
        description="Sign-off appended to template drafts"
    )
    SEED_DEMO_DATA: bool = Field(
        default=False,
        description="Load demo policies and messages for the default user on startup"
    )

    # Pipeline backends
    LLM_PROVIDER_ORDER: Optional[str] = Field(
        default=None,
        description="Comma-separated LLM provider priority, e.g. 'groq,ollama'"
    )

    # CORS Settings
    CORS_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed origins for CORS"
    )
    CORS_METHODS: str = Field(
        default="GET,POST,PUT,DELETE,OPTIONS",
        description="Comma-separated list of allowed methods for CORS"
    )

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, value: str) -> list:
        """Parse comma-separated CORS origins into list."""
        if value == "*":
            return ["*"]
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @field_validator("CORS_METHODS")
    @classmethod
    def parse_cors_methods(cls, value: str) -> list:
        """Parse comma-separated CORS methods into list."""
        return [method.strip() for method in value.split(",") if method.strip()]

    @field_validator("BUSINESS_NAME")
    @classmethod
    def validate_business_name(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("BUSINESS_NAME must not be empty")
        return value.strip()

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore"
    }


@lru_cache()
def get_settings() -> APISettings:
    """
    Retrieve validated API settings.

    Returns:
        Validated API settings object

    Raises:
        ValidationError: If configuration fails validation
    """
    return APISettings()
