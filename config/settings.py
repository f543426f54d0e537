"""
Centralized configuration for the lead qualification engine.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # Brand
    brand_name: str = Field(default="Leadqual")

    # AWS / Bedrock
    aws_region: str = Field(default="us-east-1")
    bedrock_embed_model_id: str = Field(default="amazon.titan-embed-text-v2:0")
    bedrock_llm_model_id: str = Field(default="us.anthropic.claude-sonnet-4-20250514-v1:0")

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: Optional[str] = Field(default=None)
    openai_embed_model: str = Field(default="text-embedding-3-small")
    openai_llm_model: str = Field(default="gpt-4o-mini")

    # LLM provider selection
    llm_provider: str = Field(default="openai")  # bedrock | openai
    extraction_max_tokens: int = Field(default=200)
    extraction_temperature: float = Field(default=0.3)
    response_max_tokens: int = Field(default=300)
    response_temperature: float = Field(default=0.7)

    # Pinecone knowledge search
    pinecone_api_key: str = Field(default="")
    pinecone_index_name: str = Field(default="lead-knowledge")
    pinecone_namespace: str = Field(default="public")
    knowledge_search_limit: int = Field(default=3)
    similarity_threshold: float = Field(default=0.5)

    # Google Calendar
    google_calendar_access_token: Optional[str] = Field(default=None)
    google_calendar_id: str = Field(default="primary")
    google_calendar_api_base: str = Field(default="https://www.googleapis.com/calendar/v3")
    booking_timezone: str = Field(default="UTC")
    booking_lead_time_hours: int = Field(default=24)
    booking_duration_minutes: int = Field(default=60)
    booking_dedupe: bool = Field(default=False)

    # Qualification thresholds
    qualified_threshold: int = Field(default=80)
    nurturing_threshold: int = Field(default=50)
    closing_threshold: int = Field(default=50)
    scheduling_override_threshold: int = Field(default=40)

    # Turn dispatch
    response_delay_seconds: float = Field(default=2.0)

    # Resilience around external collaborators
    retry_max_attempts: int = Field(default=3)
    retry_backoff_min: float = Field(default=0.5)
    retry_backoff_max: float = Field(default=8.0)
    call_timeout_seconds: float = Field(default=30.0)
    circuit_breaker_threshold: int = Field(default=5)
    circuit_breaker_reset_seconds: float = Field(default=60.0)

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./leadqual.db")
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_title: str = Field(default="Lead Qualification Engine API")
    api_version: str = Field(default="1.0.0")
    cors_origins: str = Field(default="*")

    # Logging
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def is_bedrock(self) -> bool:
        return self.llm_provider.lower() == "bedrock"

    @property
    def is_openai(self) -> bool:
        return self.llm_provider.lower() == "openai"

    @property
    def embed_model_id(self) -> str:
        if self.is_openai:
            return self.openai_embed_model
        return self.bedrock_embed_model_id

    @property
    def llm_model_id(self) -> str:
        if self.is_openai:
            return self.openai_llm_model
        return self.bedrock_llm_model_id

    @property
    def cors_origins_list(self) -> list:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
