from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./tripbook.db",
        alias="DATABASE_URL"
    )

    # Account tokens are issued elsewhere; we only verify them
    secret_key: str = Field(default="dev-secret-key-at-least-32-characters-long-for-development", alias="SECRET_KEY")
    algorithm: str = "HS256"

    # CORS - Frontend URLs from environment (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:8081,http://127.0.0.1:8081,http://localhost:5173",
        alias="ALLOWED_ORIGINS"
    )

    # Rate limiting ("memory://" or "redis://host:6379")
    rate_limit_storage_uri: str = Field(default="memory://", alias="RATE_LIMIT_STORAGE_URI")

    # ==============================================
    # Offer Gateway (Duffel)
    # ==============================================
    duffel_base_url: str = Field(default="https://api.duffel.com", alias="DUFFEL_BASE_URL")
    duffel_access_token: str = Field(default="", alias="DUFFEL_ACCESS_TOKEN")
    duffel_api_version: str = Field(default="v2", alias="DUFFEL_API_VERSION")
    duffel_timeout_seconds: int = Field(default=20, alias="DUFFEL_TIMEOUT_SECONDS")

    # ==============================================
    # Draft / link lifetimes
    # ==============================================
    # Used when the offer does not carry its own expiry
    draft_default_ttl_minutes: int = Field(default=30, alias="DRAFT_DEFAULT_TTL_MINUTES")
    draft_expiry_sweep_seconds: int = Field(default=60, alias="DRAFT_EXPIRY_SWEEP_SECONDS")
    draft_expiry_sweep_enabled: bool = Field(default=True, alias="DRAFT_EXPIRY_SWEEP_ENABLED")

    booking_link_ttl_days: int = Field(default=30, alias="BOOKING_LINK_TTL_DAYS")
    booking_link_token_length: int = Field(default=32, alias="BOOKING_LINK_TOKEN_LENGTH")

    # ==============================================
    # Notifications
    # ==============================================
    postmark_server_token: str = Field(default="", alias="POSTMARK_SERVER_TOKEN")
    postmark_api_url: str = Field(
        default="https://api.postmarkapp.com/email/withTemplate",
        alias="POSTMARK_API_URL"
    )
    postmark_template_alias: str = Field(default="receipt", alias="POSTMARK_TEMPLATE_ALIAS")
    postmark_message_stream: str = Field(default="outbound", alias="POSTMARK_MESSAGE_STREAM")

    gmail_client_id: str = Field(default="", alias="GMAIL_CLIENT_ID")
    gmail_client_secret: str = Field(default="", alias="GMAIL_CLIENT_SECRET")
    gmail_refresh_token: str = Field(default="", alias="GMAIL_REFRESH_TOKEN")
    gmail_token_url: str = Field(default="https://oauth2.googleapis.com/token", alias="GMAIL_TOKEN_URL")
    gmail_send_url: str = Field(
        default="https://gmail.googleapis.com/gmail/v1/users/me/messages/send",
        alias="GMAIL_SEND_URL"
    )

    notification_timeout_seconds: int = Field(default=15, alias="NOTIFICATION_TIMEOUT_SECONDS")
    sender_email: str = Field(default="support@tripbook.app", alias="SENDER_EMAIL")
    support_email: str = Field(default="support@tripbook.app", alias="SUPPORT_EMAIL")
    product_name: str = Field(default="Tripbook", alias="PRODUCT_NAME")
    public_base_url: str = Field(default="https://tripbook.app", alias="PUBLIC_BASE_URL")

    # Payment provider -> us
    payment_webhook_secret: str = Field(default="", alias="PAYMENT_WEBHOOK_SECRET")

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate SECRET_KEY is strong enough"""
        if not v:
            raise ValueError("SECRET_KEY is required and cannot be empty")
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator('database_url')
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        # Hosting providers hand out postgres://, SQLAlchemy needs postgresql://
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator('booking_link_token_length')
    @classmethod
    def validate_token_length(cls, v: int) -> int:
        # 22 alphanumeric characters is the smallest length above 128 bits
        if v < 22:
            raise ValueError("BOOKING_LINK_TOKEN_LENGTH must be at least 22")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    @property
    def has_postmark_config(self) -> bool:
        return bool(self.postmark_server_token)

    @property
    def has_gmail_config(self) -> bool:
        return bool(
            self.gmail_client_id and
            self.gmail_client_secret and
            self.gmail_refresh_token
        )

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
