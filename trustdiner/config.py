"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Centralised settings: no hardcoded values anywhere else."""

    # Database
    database_url: str = Field("sqlite+aiosqlite:///./trustdiner.db")

    # Security
    service_token: str = Field(...)
    allowed_origins: str = Field("http://localhost:3000")

    # App
    app_env: str = Field("development")
    log_level: str = Field("INFO")

    # Active question bank and allergen ids are re-read at most this often.
    # 0 disables caching.
    reference_cache_ttl_seconds: int = Field(300, ge=0)

    # Pagination
    default_page_size: int = Field(10, ge=1)
    chain_page_size: int = Field(50, ge=1)
    max_page_size: int = Field(100, ge=1)

    # Derived
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list."""
        return [o.strip() for o in self.allowed_origins.split(",")]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()


settings = get_settings()
