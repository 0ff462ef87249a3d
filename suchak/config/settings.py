"""Application configuration with environment-based settings."""
import os
from typing import Optional
from dotenv import load_dotenv


def _bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    """Base configuration class following Single Responsibility Principle."""

    # Load environment variables
    load_dotenv()

    # Identity of this client
    LOCAL_USER_ID: Optional[str] = os.getenv("LOCAL_USER_ID")
    NODE_ID: Optional[str] = os.getenv("NODE_ID")

    # Persistent storage
    STORAGE_TYPE: str = os.getenv("STORAGE_TYPE", "redis")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_KEY_PREFIX: str = os.getenv("REDIS_KEY_PREFIX", "suchak:")

    # Transport
    TRANSPORT_TYPE: str = os.getenv("TRANSPORT_TYPE", "http")
    TRANSPORT_URL: Optional[str] = os.getenv("TRANSPORT_URL")
    TRANSPORT_TOKEN: Optional[str] = os.getenv("TRANSPORT_TOKEN")
    TRANSPORT_SECRET: Optional[str] = os.getenv("TRANSPORT_SECRET")
    TRANSPORT_TIMEOUT: float = float(os.getenv("TRANSPORT_TIMEOUT", "8"))

    # Delivery and outbox
    DELIVERY_POLICY: str = os.getenv("DELIVERY_POLICY", "strict")
    OUTBOX_MAX_ATTEMPTS: int = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
    OUTBOX_BASE_DELAY: float = float(os.getenv("OUTBOX_BASE_DELAY", "1.0"))
    OUTBOX_MAX_DELAY: float = float(os.getenv("OUTBOX_MAX_DELAY", "60.0"))
    OUTBOX_JITTER: float = float(os.getenv("OUTBOX_JITTER", "0.2"))
    OUTBOX_DISPATCH_INTERVAL: float = float(os.getenv("OUTBOX_DISPATCH_INTERVAL", "1.0"))

    # Rate Limiting
    RATELIMIT_STORAGE_URL: str = os.getenv("RATELIMIT_STORAGE_URL", "redis://localhost:6379/2")
    RATELIMIT_ENABLED: bool = _bool("RATELIMIT_ENABLED", "true")

    # Monitoring
    SENTRY_DSN: Optional[str] = os.getenv("SENTRY_DSN")
    ENABLE_METRICS: bool = _bool("ENABLE_METRICS", "true")

    # Application
    SUCHAK_ENV: str = os.getenv("SUCHAK_ENV", "development")
    DEBUG: bool = _bool("DEBUG", "false")
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values for the selected backends."""
        required_vars = [("LOCAL_USER_ID", cls.LOCAL_USER_ID)]
        if cls.TRANSPORT_TYPE.lower() == "http":
            required_vars.append(("TRANSPORT_URL", cls.TRANSPORT_URL))
        if cls.STORAGE_TYPE.lower() == "redis":
            required_vars.append(("REDIS_URL", cls.REDIS_URL))

        missing = [name for name, value in required_vars if not value]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        if cls.OUTBOX_MAX_ATTEMPTS < 1:
            raise ValueError("OUTBOX_MAX_ATTEMPTS must be at least 1")
        if not 0 <= cls.OUTBOX_JITTER <= 1:
            raise ValueError("OUTBOX_JITTER must be between 0 and 1")


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    STORAGE_TYPE = os.getenv("STORAGE_TYPE", "memory")
    TRANSPORT_TYPE = os.getenv("TRANSPORT_TYPE", "loopback")
    LOCAL_USER_ID = os.getenv("LOCAL_USER_ID", "local-user")
    RATELIMIT_STORAGE_URL = os.getenv("RATELIMIT_STORAGE_URL", "memory://")


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SUCHAK_ENV = "testing"
    LOCAL_USER_ID = "alice"
    NODE_ID = "test-node"
    STORAGE_TYPE = "memory"
    TRANSPORT_TYPE = "loopback"
    TRANSPORT_SECRET = None
    REDIS_URL = "redis://localhost:6379/15"  # Use different DB for tests
    OUTBOX_DISPATCH_INTERVAL = 0.0
    RATELIMIT_ENABLED = False
    ENABLE_METRICS = False
    SENTRY_DSN = None


def get_config() -> type[Config]:
    """Factory method to get configuration based on environment."""
    env = os.getenv("SUCHAK_ENV", "development").lower()

    config_map = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
    }

    return config_map.get(env, DevelopmentConfig)
