"""
Application Settings for Crudo

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Vendor credentials are optional at load time so that the API can boot
    with a partial configuration; the providers that need a credential raise
    ``ConfigurationError`` when it is missing.
    """

    # Supabase Configuration
    supabase_url: str
    supabase_service_role_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None

    # WhatsApp Cloud API
    whatsapp_access_token: Optional[str] = None
    whatsapp_phone_number_id: Optional[str] = None
    whatsapp_api_version: str = "v24.0"
    whatsapp_verify_token: Optional[str] = None
    whatsapp_app_secret: Optional[str] = None
    whatsapp_transcript_template: str = "transcript_confirmation"
    whatsapp_template_language: str = "en"
    transcript_echo_max_chars: int = 1000

    # OpenAI
    openai_api_key: Optional[str] = None
    openai_chat_model: str = "gpt-4o-mini"
    openai_transcription_model: str = "whisper-1"
    extraction_temperature: float = 0.3

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_monthly: Optional[str] = None
    stripe_price_annual: Optional[str] = None
    stripe_price_metered: Optional[str] = None
    stripe_meter_event_name: str = "crudo_credit_meter"

    # Brevo (transactional email)
    brevo_api_key: Optional[str] = None
    brevo_api_url: str = "https://api.brevo.com/v3/smtp/email"

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    http_timeout_seconds: float = 30.0

    # Post-checkout activation wait
    activation_wait_timeout_seconds: float = 20.0
    activation_poll_attempts: int = 5
    activation_poll_interval_seconds: float = 2.0

    # CORS Configuration
    frontend_url: str = "http://localhost:5173"
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def normalize_urls(self) -> "Settings":
        """Strip trailing slashes so URLs can be joined safely."""
        self.supabase_url = self.supabase_url.rstrip("/")
        self.frontend_url = self.frontend_url.rstrip("/")
        if self.transcript_echo_max_chars < 4:
            raise ValueError("TRANSCRIPT_ECHO_MAX_CHARS must be at least 4")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    @property
    def whatsapp_graph_url(self) -> str:
        """Base URL of the versioned Graph API."""
        return f"https://graph.facebook.com/{self.whatsapp_api_version}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
