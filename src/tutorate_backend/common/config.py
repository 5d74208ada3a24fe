'''
Holds all the configurations
'''
from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    Manages application configuration using environment variables.
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Application Metadata
    APP_NAME: str = "Tutorate Backend"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "The backend API for the Tutorate tuition marketplace."
    TEST_MODE: bool = False
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Database URL
    DATABASE_URL_PROD: str
    DATABASE_URL_TEST: str
    @property
    def database_url(self) -> str:
        """
        Dynamically returns the correct database URL based on the test_mode flag.
        """
        if self.TEST_MODE:
            return self.DATABASE_URL_TEST
        return self.DATABASE_URL_PROD

    # Store timeouts: requests fail fast instead of queueing on a dead pool
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT_SECONDS: float = 5
    DB_COMMAND_TIMEOUT_SECONDS: float = 10

    # Identity token settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    VERIFIER_TIMEOUT_SECONDS: float = 5

    # Charge authority (Stripe-compatible payment intents API)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    CHARGE_TIMEOUT_SECONDS: float = 10
    DEFAULT_CURRENCY: str = "bdt"

    # Reporting
    REPORT_TIMEOUT_SECONDS: float = 10

    # Public listings
    FEATURED_TUTOR_MIN_RATING: Decimal = Decimal("4.5")
    FEATURED_TUTOR_LIMIT: int = 8

    BACKEND_CORS_ORIGINS: list[str] = []

# Create a single, importable instance of the settings
settings = Settings()
