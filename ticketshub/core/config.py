from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "TicketsHub Checkout API"
    # Comma-separated origins for CORS (e.g. https://ticketshub.in,https://www.ticketshub.in). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    # Verifies identity-provider bearer tokens (HS256)
    SECRET_KEY: str

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Pricing policy (basis points, 1800 = 18%). Runtime overrides live in the settings table.
    CURRENCY: str = "INR"
    TAX_RATE_BPS: int = 1800
    PLATFORM_FEE_BPS: int = 500

    # Inventory holds created during commit
    RESERVATION_TTL_MINUTES: int = 15
    # Payments left VERIFIED without a booking for this long are retried by the worker
    RECONCILE_AFTER_MINUTES: int = 5

    # Razorpay (Orders API + HMAC callbacks)
    RAZORPAY_HOST: str = "api.razorpay.com"
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""
    RAZORPAY_TIMEOUT_SECONDS: float = 10.0
    RAZORPAY_SANDBOX: bool = False  # If True, mint orders locally instead of calling Razorpay (dev only)


settings = Settings()
