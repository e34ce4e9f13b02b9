from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
import os


class Settings(BaseSettings):
    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False                 # JSON lines instead of plain text

    # ------------------------------------------------------------------
    # Durable storage (JSON files on local disk)
    # ------------------------------------------------------------------
    DATA_DIR: str = "data"
    SYNC_STORAGE_FILE: str = "network-storage.json"
    CHANGELOG_FILE: str = "changelog.json"

    # ------------------------------------------------------------------
    # Attachments (S3 / R2 / Local)
    # ------------------------------------------------------------------
    DOCS_BUCKET: Optional[str] = None
    S3_ENDPOINT_URL: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-1"  # R2 accepts 'auto' as well
    S3_ADDRESSING_STYLE: str = "virtual"  # or 'path'
    S3_PREFIX: str = "uploads"
    LOCAL_UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_MB: int = 5

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------
    PRESENCE_TTL_SECONDS: int = 300
    PRESENCE_SWEEP_SECONDS: int = 60

    # ------------------------------------------------------------------
    # Change log
    # ------------------------------------------------------------------
    CHANGELOG_MAX_ENTRIES: int = 10_000
    CHANGELOG_DEFAULT_LIMIT: int = 1000
    CHANGELOG_DEFAULT_DAYS_TO_KEEP: int = 90
    CHANGELOG_RETENTION_DAYS: Optional[int] = None  # daily prune job when set

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------
    START_SCHEDULER_WEB: bool = False      # start APScheduler in web process (default off)

    # ------------------------------------------------------------------
    # Company defaults for a fresh dataset
    # ------------------------------------------------------------------
    COMPANY_NAME: str = "Mirage Business Solutions"
    COMPANY_PHONE: str = "+962 6 569 13 33"
    COMPANY_EMAIL: str = "m.abuosba@miragebs.com"
    COMPANY_WEBSITE: str = "http://www.miragebs.com/"
    COMPANY_ADDRESS: str = "Wadi Saqra, P.O.Box 268 Amman 11731 Jordan"

    # ------------------------------------------------------------------
    # Deployment / hosting
    # ------------------------------------------------------------------
    PUBLIC_APP_HOST: Optional[str] = None  # e.g., "tenders.example.com" (no scheme)

    # ------------------------------------------------------------------
    # Model configuration
    # ------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # ignore any unrecognized vars instead of erroring
    )

    @property
    def sync_storage_path(self) -> str:
        return os.path.join(self.DATA_DIR, self.SYNC_STORAGE_FILE)

    @property
    def changelog_path(self) -> str:
        return os.path.join(self.DATA_DIR, self.CHANGELOG_FILE)

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_MB * 1024 * 1024


# create global settings instance
settings = Settings()
