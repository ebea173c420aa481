"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.03.00"

    # Database
    DATABASE_URL: str = "sqlite:///./voicedesk.db"

    # Retell webhook intake
    RETELL_WEBHOOK_SECRET: str = ""
    WEBHOOK_TEST_MODE: bool = False  # Skip signature checks (local testing only)
    WEBHOOK_MAX_PAYLOAD_BYTES: int = 1_000_000  # Transcripts can be large
    RATE_LIMIT_WEBHOOK: int = 120  # Requests per minute per IP (0 disables)

    # Message queue
    QUEUE_PROCESSOR_ENABLED: bool = True  # Run the poller inside the API process
    QUEUE_POLL_INTERVAL_SECONDS: float = 5.0
    QUEUE_BATCH_SIZE: int = 50
    QUEUE_CONCURRENCY: int = 10  # In-flight deliveries per batch
    QUEUE_MAX_ATTEMPTS: int = 3
    QUEUE_RETRY_DELAY_SECONDS: int = 60  # Fixed, not exponential
    QUEUE_STALE_PROCESSING_MINUTES: int = 15
    DELIVERY_TIMEOUT_SECONDS: float = 5.0

    # Cost estimates (USD)
    SMS_SEGMENT_COST: str = "0.0079"
    EMAIL_COST: str = "0.0001"

    # SMS providers (TXT180 primary, Twilio fallback)
    TXT180_API_KEY: str = ""
    TXT180_FROM_NUMBER: str = ""
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_FROM_NUMBER: str = ""

    # Email providers (Resend primary, SMTP fallback)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "noreply@example.com"
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True

    # Alerting
    SLACK_WEBHOOK_URL: str = ""
    ALERT_EMAIL_TO: str = ""
    ALERT_SMS_TO: str = ""
    ALERT_THROTTLE_MINUTES: int = 15

    # Tenants
    TENANT_CONFIG_DIR: str = "./tenants"
    TENANT_CONFIG_TTL_SECONDS: int = 300
    DEFAULT_TIMEZONE: str = "America/New_York"
    BOOKING_URL: str = ""
    PORTAL_URL: str = ""

    # AI intent classification (falls back to keyword rules when unset)
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    AI_TIMEOUT_SECONDS: float = 15.0

    # Operator endpoints (queue / appointments). Empty disables the check (dev only)
    OPERATOR_API_KEY: str = ""

    # Monitoring
    SENTRY_DSN: str = ""

    @property
    def webhook_signature_required(self) -> bool:
        if self.WEBHOOK_TEST_MODE:
            return False
        return bool(self.RETELL_WEBHOOK_SECRET) or self.ENV != "dev"


settings = Settings()
