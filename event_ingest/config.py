"""
Centralized configuration management using pydantic-settings.
This module provides a single source of truth for all application configuration.
"""


from typing import Annotated

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from event_ingest.utils.logger import setup_logger

load_dotenv(override=True)


logger = setup_logger("core_config")


class Settings(BaseSettings):
    """
    Application settings managed by pydantic-settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_prefix="",
        populate_by_name=True,
    )

    # ===== OpenAI Configuration =====
    openai_api_key: str | None = Field(
        default=None,
        alias="OPENAI_API_KEY",
        description="OpenAI API key for accessing OpenAI services",
    )

    openai_base_url: str | None = Field(
        default=None,
        alias="OPENAI_BASE_URL",
        description="OpenAI API base URL, defaults to https://api.openai.com/v1",
    )

    default_openai_model: str = Field(
        default="gpt-4o-mini",
        alias="DEFAULT_OPENAI_MODEL",
        description="Default OpenAI model used for classification, extraction and comparison",
    )

    openai_vision_model: str | None = Field(
        default=None,
        alias="OPENAI_VISION_MODEL",
        description="Model used for OCR transcription; falls back to DEFAULT_OPENAI_MODEL",
    )

    # ===== Gemini Configuration =====
    gemini_api_key: str | None = Field(
        default=None, alias="GEMINI_API_KEY", description="Google Gemini API key"
    )

    default_gemini_model: str = Field(
        default="gemini-2.0-flash-lite",
        alias="DEFAULT_GEMINI_MODEL",
        description="Default Gemini model to use",
    )

    # ===== LLM Provider Configuration =====
    default_llm_provider: str = Field(
        default="openai",
        alias="DEFAULT_LLM_PROVIDER",
        description="LLM provider used by the pipeline (openai, gemini)",
    )

    llm_temperature: float = Field(
        default=0.1,
        alias="LLM_TEMPERATURE",
        description="Sampling temperature for every pipeline stage",
    )

    llm_request_timeout: float = Field(
        default=60.0,
        alias="LLM_REQUEST_TIMEOUT",
        description="Per-request timeout for model calls in seconds",
    )

    llm_classification_max_tokens: int = Field(
        default=400,
        alias="LLM_CLASSIFICATION_MAX_TOKENS",
        description="Maximum tokens for the classification stage",
    )

    llm_extraction_max_tokens: int = Field(
        default=4000,
        alias="LLM_EXTRACTION_MAX_TOKENS",
        description="Maximum tokens for extraction and description building",
    )

    llm_evidence_max_tokens: int = Field(
        default=2000,
        alias="LLM_EVIDENCE_MAX_TOKENS",
        description="Maximum tokens for the evidence locator",
    )

    llm_comparison_max_tokens: int = Field(
        default=300,
        alias="LLM_COMPARISON_MAX_TOKENS",
        description="Maximum tokens for the comparison stage",
    )

    llm_ocr_max_tokens: int = Field(
        default=2000,
        alias="LLM_OCR_MAX_TOKENS",
        description="Maximum tokens for image transcription",
    )

    # ===== Retry Configuration =====
    retry_max_attempts: int = Field(
        default=3,
        alias="RETRY_MAX_ATTEMPTS",
        description="Maximum attempts for every external call, including the first one",
    )

    retry_base_delay_seconds: float = Field(
        default=1.0,
        alias="RETRY_BASE_DELAY_SECONDS",
        description="Base delay of the exponential backoff",
    )

    retry_max_delay_seconds: float = Field(
        default=30.0,
        alias="RETRY_MAX_DELAY_SECONDS",
        description="Upper bound of the exponential backoff",
    )

    rate_limit_default_delay_seconds: float = Field(
        default=2.0,
        alias="RATE_LIMIT_DEFAULT_DELAY_SECONDS",
        description="Delay used for rate-limit errors without a suggested retry delay",
    )

    # ===== Database Configuration =====
    event_ingest_schema: str = Field(
        default="event_ingest",
        alias="EVENT_INGEST_SCHEMA",
        description="Database schema name",
    )

    app_database_url: str | None = Field(
        default=None,
        alias="EVENT_INGEST_DATABASE_URL",
        description="Application database URL",
    )

    db_pool_size: int = Field(
        default=5, alias="DB_POOL_SIZE", description="SQLAlchemy connection pool size"
    )

    db_max_overflow: int = Field(
        default=10,
        alias="DB_MAX_OVERFLOW",
        description="SQLAlchemy connection pool overflow",
    )

    # ===== Pipeline Configuration =====
    reference_timezone: str = Field(
        default="Asia/Jerusalem",
        alias="REFERENCE_TIMEZONE",
        description="Zone in which all human-stated times are interpreted",
    )

    message_text_max_length: int = Field(
        default=8000,
        alias="MESSAGE_TEXT_MAX_LENGTH",
        description="Maximum message length passed to the model",
    )

    candidate_limit: int = Field(
        default=5,
        alias="CANDIDATE_LIMIT",
        description="Maximum number of candidate records considered for comparison",
    )

    far_future_years: int = Field(
        default=2,
        alias="FAR_FUTURE_YEARS",
        description="Occurrences further in the future than this are flagged",
    )

    extraction_mode: str = Field(
        default="evidence_first",
        alias="EXTRACTION_MODE",
        description="Extraction strategy: evidence_first or single_pass",
    )

    ocr_enabled: bool = Field(
        default=True,
        alias="OCR_ENABLED",
        description="Transcribe attached images before extraction",
    )

    # ===== Intake Configuration =====
    allowed_group_ids: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        alias="ALLOWED_GROUP_IDS",
        description="Chat groups whose messages are processed",
    )

    discovery_mode: bool = Field(
        default=False,
        alias="DISCOVERY_MODE",
        description="Log group metadata for incoming messages without processing them",
    )

    confirmation_group_ids: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        alias="CONFIRMATION_GROUP_IDS",
        description="Chats that receive processing status confirmations",
    )

    # ===== Object Store Configuration =====
    media_root: str = Field(
        default="data/media",
        alias="MEDIA_ROOT",
        description="Directory where uploaded media is stored",
    )

    media_public_base_url: str = Field(
        default="http://localhost:8080/media",
        alias="MEDIA_PUBLIC_BASE_URL",
        description="Public URL prefix under which stored media is served",
    )

    # ===== Transport Bridge Configuration =====
    transport_base_url: str | None = Field(
        default=None,
        alias="TRANSPORT_BASE_URL",
        description="Base URL of the chat transport sidecar",
    )

    transport_timeout_seconds: float = Field(
        default=15.0,
        alias="TRANSPORT_TIMEOUT_SECONDS",
        description="Timeout for calls to the transport sidecar",
    )

    # ===== Budget Configuration =====
    monthly_llm_call_limit: int = Field(
        default=0,
        alias="MONTHLY_LLM_CALL_LIMIT",
        description="Monthly model call limit, 0 disables the check",
    )

    monthly_ocr_call_limit: int = Field(
        default=0,
        alias="MONTHLY_OCR_CALL_LIMIT",
        description="Monthly OCR call limit, 0 disables the check",
    )

    estimated_llm_calls_per_message: int = Field(
        default=10,
        alias="ESTIMATED_LLM_CALLS_PER_MESSAGE",
        description="Conservative estimate of model calls per pipeline run",
    )

    # ===== Server Configuration =====
    server_host: str = Field(
        default="0.0.0.0", alias="SERVER_HOST", description="Server host address"
    )

    server_port: int = Field(
        default=8080, alias="SERVER_PORT", description="Server port number"
    )

    server_workers: int = Field(
        default=1, alias="SERVER_WORKERS", description="Number of uvicorn workers"
    )

    # ===== CORS Configuration =====
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        alias="CORS_ALLOW_ORIGINS",
        description="CORS allowed origins",
    )

    db_unavailable_hint: str = Field(
        default="Database connection failed. The server may be offline or network connectivity is down.",
        alias="DB_UNAVAILABLE_HINT",
        description="User-facing hint for database connection errors",
    )

    @field_validator(
        "allowed_group_ids", "confirmation_group_ids", "cors_allow_origins", mode="before"
    )
    @classmethod
    def split_comma_separated(cls, v):
        """Accept comma-separated strings for list settings."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Validate settings and log warnings for missing critical configurations."""

        if self.default_llm_provider == "openai" and not self.openai_api_key:
            logger.warning("OPENAI_API_KEY environment variable not set.")

        if self.default_llm_provider == "gemini" and not self.gemini_api_key:
            logger.warning("GEMINI_API_KEY environment variable not set.")

        if not self.app_database_url:
            logger.warning("EVENT_INGEST_DATABASE_URL environment variable not set.")

        if self.extraction_mode not in ("evidence_first", "single_pass"):
            logger.warning(
                f"Unknown EXTRACTION_MODE '{self.extraction_mode}', using evidence_first."
            )
            self.extraction_mode = "evidence_first"

        if not self.allowed_group_ids and not self.discovery_mode:
            logger.warning(
                "ALLOWED_GROUP_IDS is empty and discovery mode is off; no messages will be processed."
            )

        logger.debug(f"Using database schema: {self.event_ingest_schema}")
        logger.debug(f"Extraction mode: {self.extraction_mode}")

        return self

    @property
    def schema_name(self) -> str:
        return self.event_ingest_schema


# Global settings instance
settings = Settings()

SCHEMA_NAME = settings.schema_name
