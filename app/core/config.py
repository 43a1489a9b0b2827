from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Tourbook API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS (e.g. https://tourbook.example,https://admin.tourbook.example). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Booking transaction: lock/statement timeout around the capacity reservation
    BOOKING_TXN_TIMEOUT_MS: int = 3000
    # Tour start dates are interpreted as local midnight in this zone (cancellation window)
    BUSINESS_TIMEZONE: str = "UTC"

    # celery | inline | disabled
    NOTIFIER_BACKEND: str = "celery"

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "bookings@tourbook.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""

    STAFF_EMAIL: str = ""  # copy of every new booking request
    COMPANY_NAME: str = "Tourbook Travel"
    CLIENT_BASE_URL: str = ""  # e.g. https://tourbook.example

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE: int = 300  # seconds

    # VNPay
    VNPAY_TMN_CODE: str = ""
    VNPAY_HASH_SECRET: str = ""
    VNPAY_PAYMENT_URL: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    VNPAY_RETURN_URL: str = ""  # defaults to CLIENT_BASE_URL + /payment/vnpay/return


settings = Settings()
