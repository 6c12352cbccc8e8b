from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_PATH = Path(__file__).resolve().parent.parent
ENV_PATH = ROOT_PATH / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Seed data and PDF files
    DATA_PATH: Path = ROOT_PATH / "data" / "db.json"
    PDF_BASE_PATH: Path = ROOT_PATH / "pdfs"

    # Storage backends ("memory" or "redis")
    STORAGE_BACKEND: str = "memory"
    REDIS_URL: str | None = None
    SESSION_TTL_SECONDS: int = 60 * 60 * 12

    # =================================================================
    # WORKSPACE BEHAVIOUR
    # =================================================================
    PDF_CACHE_MAX_BYTES: int = 5 * 1024 * 1024  # per-file persistence cap
    VALIDATION_STEP_PERCENT: int = 10
    VALIDATION_INTERVAL_MS: int = 150
    COST_PER_ITEM: float = 7.95

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def resolve_data_path(self) -> Path:
        """Seed file path, relative paths anchored at the project root."""
        path = Path(self.DATA_PATH)
        return path if path.is_absolute() else ROOT_PATH / path

    def resolve_pdf_base_path(self) -> Path:
        path = Path(self.PDF_BASE_PATH)
        path = path if path.is_absolute() else ROOT_PATH / path
        return path.resolve()

    def validation_interval_seconds(self) -> float:
        return max(self.VALIDATION_INTERVAL_MS, 0) / 1000

    def get_storage_config(self) -> dict:
        """
        Get storage configuration.
        Redis is only used when a URL is configured.
        """
        backend = self.STORAGE_BACKEND.lower()
        if backend == "redis" and not self.REDIS_URL:
            backend = "memory"

        return {
            "backend": backend,
            "redis_url": self.REDIS_URL,
            "session_ttl_seconds": self.SESSION_TTL_SECONDS,
        }


settings = Settings()
