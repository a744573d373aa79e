import os
from dataclasses import dataclass, field
from typing import List
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: List[str] = field(
        default_factory=lambda: [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    )

    # Database
    database_file: str = os.getenv("LIBRARY_DB_FILE", "coollibrary.db")
    database_timeout: float = float(os.getenv("DATABASE_TIMEOUT", "5"))  # seconds to wait for a write lock

    # Security
    secret_key: str = os.getenv("SECRET_KEY", "your-secret-key-change-this-in-production")
    jwt_secret_key: str = os.getenv("JWT_SECRET_KEY", secret_key)
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_issuer: str = os.getenv("JWT_ISSUER", "CoolLibrary")
    jwt_audience: str = os.getenv("JWT_AUDIENCE", "CoolLibraryUsers")
    jwt_expiration_minutes: int = int(os.getenv("JWT_EXPIRATION_MINUTES", "60"))

    # Circulation policy
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "14"))
    default_max_books_allowed: int = int(os.getenv("DEFAULT_MAX_BOOKS_ALLOWED", "5"))

    # Application
    app_name: str = os.getenv("APP_NAME", "CoolLibrary API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG")
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
