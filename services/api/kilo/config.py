from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

BYTES_PER_MB = 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = "Kilo Knowledge Base"
    environment: str = "development"

    # Database - can use either DATABASE_URL or separate params
    database_url: str | None = None

    # Separate DB params (for passwords with special characters)
    db_host: str | None = None
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: str | None = None
    db_name: str = "postgres"

    # Auth - dev mode bypass
    dev_user_id: str | None = None  # Set this to bypass JWT auth in local dev

    # Supabase Auth
    supabase_url: str | None = None
    supabase_jwt_secret: str | None = None
    supabase_anon_key: str | None = None

    # Gemini (File Search + chat)
    gemini_api_key: str | None = None
    chat_model: str = "gemini-2.5-flash"
    chat_temperature: float = 0.7
    chat_max_output_tokens: int = 2000

    # Document ingestion polling
    document_poll_interval_seconds: float = 5.0
    document_poll_timeout_seconds: float = 300.0

    # In-process rate limiter sweep
    rate_limit_sweep_interval_seconds: float = 3600.0

    # Quotas
    daily_query_limit: int = 100
    max_knowledge_bases: int = 5
    max_files_per_knowledge_base: int = 10
    max_file_size_mb: int = 10
    max_pdf_pages: int = 200
    max_storage_mb: int = 100

    # CORS - production frontend URL
    frontend_url: str | None = None

    @property
    def is_dev_mode(self) -> bool:
        """Check if running in dev mode with auth bypass."""
        return self.dev_user_id is not None

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * BYTES_PER_MB

    @property
    def max_storage_bytes(self) -> int:
        return self.max_storage_mb * BYTES_PER_MB


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
