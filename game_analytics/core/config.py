# Pydantic settings

from pydantic_settings import BaseSettings, SettingsConfigDict
import os


class Settings(BaseSettings):
    """Application settings"""

    # App
    app_name: str = "Cube Wars Analytics API"
    debug: bool = False

    # Warehouse
    warehouse_path: str = "./data/analytics.duckdb"
    events_table: str = "events"

    # Auth
    google_client_id: str = ""
    session_secret: str = ""
    session_ttl_days: int = 7
    allowed_emails: str = ""  # comma separated
    cookie_secure: bool = False

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 300
    rate_limit_period: int = 60  # seconds

    model_config = SettingsConfigDict(
        # Use .env.local if it exists (for local dev), otherwise .env (for Docker)
        env_file=".env.local" if os.path.exists(".env.local") else ".env",
        case_sensitive=False
    )

    @property
    def allowed_email_set(self) -> frozenset[str]:
        return frozenset(
            email.strip().lower() for email in self.allowed_emails.split(",") if email.strip()
        )

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()
