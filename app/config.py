from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/field_stock"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # Auth (tokens are issued by the identity service, we only verify them)
    SECRET_KEY: str = "development-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Error tracking
    SENTRY_DSN: str | None = None

    # Stock ledger
    STOCK_CONFLICT_MAX_RETRIES: int = 3
    STOCK_CONFLICT_BACKOFF_MS: int = 50
    STOCK_TRANSACTION_ISOLATION: str | None = None  # e.g. "REPEATABLE READ"
    LEDGER_DEFAULT_PAGE_SIZE: int = 20

    @field_validator('STOCK_CONFLICT_MAX_RETRIES')
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("STOCK_CONFLICT_MAX_RETRIES must be >= 0")
        return v

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True
    SQL_ECHO: bool = False
    VERSION: str = "1.0.0"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def sqlalchemy_echo(self) -> bool:
        """Never echo SQL in production, statements can carry identifiers."""
        return self.SQL_ECHO and not self.is_production

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
