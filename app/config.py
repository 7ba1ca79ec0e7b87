import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, default))


class Settings:
    """Runtime settings read from the environment (and .env when present)."""

    def __init__(self):
        self.mongodb_uri = os.getenv("MONGODB_URI", "mongodb://localhost:27017/appbuilder")
        self.mongodb_db = os.getenv("MONGODB_DB", "appbuilder")
        self.max_pool_size = _int_env("MONGODB_MAX_POOL_SIZE", 10)
        self.server_selection_timeout_ms = _int_env("MONGODB_SERVER_SELECTION_TIMEOUT_MS", 5000)
        self.socket_timeout_ms = _int_env("MONGODB_SOCKET_TIMEOUT_MS", 45000)
        self.connect_retries = _int_env("MONGODB_CONNECT_RETRIES", 5)
        self.retry_delay_seconds = _int_env("MONGODB_RETRY_DELAY_SECONDS", 5)

        self.environment = os.getenv("ENVIRONMENT", "development")
        self.log_level = os.getenv("LOG_LEVEL", "INFO" if self.environment == "production" else "DEBUG").upper()
        self.cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        self.port = _int_env("PORT", 10000)

        self.default_page_limit = _int_env("DEFAULT_PAGE_LIMIT", 12)
        self.max_page_limit = _int_env("MAX_PAGE_LIMIT", 100)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
