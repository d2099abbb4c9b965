"""
Kho Dashboard Configuration
Core settings for the warehouse voucher API
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
from pathlib import Path


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application Info
    APP_NAME: str = "Kho Dashboard API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Remote table API (AppSheet)
    APPSHEET_APP_ID: str = ""
    APPSHEET_ACCESS_KEY: str = ""
    APPSHEET_REGION: str = "www"
    APPSHEET_BASE_URL: Optional[str] = None
    APPSHEET_TIMEOUT_SECONDS: float = 30.0

    # Remote table names
    VOUCHER_TABLE: str = "NXKHO"
    VOUCHER_LINE_TABLE: str = "NXKHODE"

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    APPROVER_ROLES: List[str] = ["Admin", "Quản lý"]

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",  # Next.js frontend
    ]

    # Vouchers
    VOUCHER_CODE_PREFIX: str = "NXT"
    HISTORY_TIMESTAMP_FORMAT: str = "%d/%m/%Y %H:%M:%S"

    # Notifications (Zalo Bot)
    NOTIFICATION_ENABLED: bool = False
    ZALO_API_URL: str = "https://bot-api.zapps.me"
    ZALO_BOT_TOKEN: str = ""
    ZALO_CHAT_ID: str = ""
    NOTIFY_VOUCHER_CREATION: bool = True
    NOTIFY_VOUCHER_APPROVAL: bool = True
    NOTIFY_VOUCHER_REJECTION: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "app.log"
    ERROR_LOG_FILE: str = "error.log"

    # API Configuration
    API_V1_STR: str = "/api/v1"
    DOCS_URL: str = "/docs"

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Log level names are matched upper-case"""
        return v.upper()

    @field_validator("APPSHEET_BASE_URL")
    @classmethod
    def strip_base_url(cls, v: Optional[str]) -> Optional[str]:
        if v:
            return v.rstrip("/")
        return v or None

    @property
    def appsheet_tables_url(self) -> str:
        """Base URL of the remote tables endpoint"""
        if self.APPSHEET_BASE_URL:
            return self.APPSHEET_BASE_URL
        return (
            f"https://{self.APPSHEET_REGION}.appsheet.com"
            f"/api/v2/apps/{self.APPSHEET_APP_ID}/tables"
        )

    @property
    def notifications_active(self) -> bool:
        """Notifications go out only when enabled and fully configured"""
        return self.NOTIFICATION_ENABLED and bool(self.ZALO_BOT_TOKEN) and bool(self.ZALO_CHAT_ID)


# Global settings instance
settings = Settings()
