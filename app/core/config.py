"""
Configuration for the disease risk assessment service.

Values come from the environment (or a local .env file).
"""
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Disease Risk Assessment API"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # Generation service
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.2
    generation_timeout_seconds: float = Field(default=30.0, gt=0)
    use_langchain: bool = Field(default=False, description="Use LangChain structured output")
    use_fallback_only: bool = Field(default=False, description="Never call the generation service")


def initialize_env() -> None:
    """Load environment variables from .env if present."""
    load_dotenv()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
