import base64
import binascii
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Known insecure default keys (must never be used in production) ──
_INSECURE_KEYS = {
    "change_this",
    "change_this_to_a_secure_random_string",
    "CHANGE_THIS_PRODUCTION_SECRET_MIN_32_CHARS",
    "secret",
}


class Settings(BaseSettings):
    APP_NAME: str = "AXP Edge Delivery"
    APP_ENV: str = "development"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "change_this"
    ALGORITHM: str = "HS256"

    # CORS
    BACKEND_CORS_ORIGINS: str = ""

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "axp_edge"
    DATABASE_URL: str = ""  # overrides POSTGRES_* when set

    # Credential vault (base64, 256-bit)
    ENCRYPTION_KEY: str = ""

    # Callback endpoint handed to every deployed worker
    API_BASE_URL: str = "http://localhost:8000"

    # Remote edge platform
    PLATFORM_API_BASE: str = "https://api.cloudflare.com/client/v4"
    PLATFORM_API_TIMEOUT: float = 30.0      # seconds, per call
    WORKER_COMPATIBILITY_DATE: str = "2024-02-01"

    # Content sync
    SYNC_CONCURRENCY: int = 5               # concurrent KV writes per sync

    # Post-deploy health probe
    HEALTH_PROBE_ENABLED: bool = True
    HEALTH_PROBE_ATTEMPTS: int = 3
    HEALTH_PROBE_TIMEOUT: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @model_validator(mode="after")
    def _validate_production_security(self) -> "Settings":
        """Block startup if critical secrets are insecure in production / staging."""
        if self.APP_ENV in ("production", "staging"):
            # ── SECRET_KEY ──
            if self.SECRET_KEY in _INSECURE_KEYS or len(self.SECRET_KEY) < 32:
                raise ValueError(
                    f"SECRET_KEY is insecure ('{self.SECRET_KEY[:8]}…'). "
                    "Set a strong random key (≥ 32 chars) in .env or environment. "
                    "Hint: python scripts/generate_secrets.py"
                )
            # ── ENCRYPTION_KEY ── (never echo any part of it)
            try:
                decoded = base64.b64decode(self.ENCRYPTION_KEY.strip(), validate=True)
            except (binascii.Error, ValueError):
                decoded = b""
            if len(decoded) < 32:
                raise ValueError(
                    "ENCRYPTION_KEY is missing or shorter than 256 bits. "
                    "Generate one with: python scripts/generate_secrets.py"
                )
            # ── Database password ──
            if self.POSTGRES_PASSWORD in ("postgres", "") and not self.DATABASE_URL:
                raise ValueError(
                    "POSTGRES_PASSWORD is set to default 'postgres'. "
                    "Set a strong password in .env or environment."
                )
        return self

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_staging(self) -> bool:
        return self.APP_ENV == "staging"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

settings = Settings()
