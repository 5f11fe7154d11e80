import os
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Environment setting
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

    # Server
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "3005"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
    LOG_DIR = os.getenv("LOG_DIR", "logs")

    # db creds (postgres is used when a password is configured)
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD")
    DB_NAME = os.getenv("DB_NAME", "simlink")
    DB_PORT = os.getenv("DB_PORT", "5432")
    SQLITE_PATH = os.getenv("SQLITE_PATH", "./simlink.db")

    # Pairing
    PAIRING_CODE_LENGTH = int(os.getenv("PAIRING_CODE_LENGTH", "6"))
    PAIRING_CODE_MAX_ATTEMPTS = int(os.getenv("PAIRING_CODE_MAX_ATTEMPTS", "5"))
    PAIRING_CODE_TTL_SECONDS = int(os.getenv("PAIRING_CODE_TTL_SECONDS", "600"))  # 0 disables expiry
    CLEAR_STALE_PEER_ON_REPAIR = _env_bool("CLEAR_STALE_PEER_ON_REPAIR", True)

    # Relay
    MAX_CONTENT_BYTES = int(os.getenv("MAX_CONTENT_BYTES", "4096"))

    def _build_database_url(self):
        explicit = os.getenv("DATABASE_URL")
        if explicit:
            return explicit
        if self.DB_PASSWORD:
            base_url = f"postgresql+asyncpg://{self.DB_USER}:{quote_plus(self.DB_PASSWORD)}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            if self.ENVIRONMENT == "development":
                return base_url
            return f"{base_url}?ssl=require"
        return f"sqlite+aiosqlite:///{self.SQLITE_PATH}"

    @property
    def DATABASE_URL(self):
        return self._build_database_url()

settings = Settings()
