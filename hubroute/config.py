from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./hubroute.db"
    LOG_LEVEL: str = "INFO"

    # Auth — bearer tokens identify the customer, sub = customer id
    JWT_SECRET: str = ""  # REQUIRED in production — fail loudly if missing at auth time
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_EXPIRE_MINUTES: int = 15

    # Pricing policy
    CURRENCY: str = "NGN"  # single-currency marketplace
    PLATFORM_FEE_RATE: float = 0.15
    QUOTE_VALIDITY_HOURS: int = 24

    # Routing
    HUB_LOAD_INCREMENT: float = 0.05

    # Persistence — optimistic concurrency retries
    WRITE_RETRY_ATTEMPTS: int = 3
    WRITE_RETRY_BACKOFF_SECONDS: float = 0.05

    # Flutterwave
    FLUTTERWAVE_BASE_URL: str = "https://api.flutterwave.com/v3"
    FLUTTERWAVE_PUBLIC_KEY: str = ""
    FLUTTERWAVE_SECRET_KEY: str = ""
    FLUTTERWAVE_WEBHOOK_HASH: str = ""
    PAYMENT_REDIRECT_URL: str = "http://localhost:3000/payment/verify"
    PAYMENT_AMOUNT_TOLERANCE: float = 0.01
    TX_REF_PREFIX: str = "hubroute"

    # Demo catalog + hubs — never loaded unless asked for
    SEED_DEMO_DATA: bool = False

    class Config:
        env_file = ".env"


settings = Settings()
