# config/settings.py

from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field, validator
import os
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "QR Attendance"
    DEBUG: bool = False
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production|testing)$")
    ORGANIZATION_NAME: str = "School Administration"

    # CORS
    CORS_ORIGINS: str = ""

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        if not self.CORS_ORIGINS:
            return ["*"] if self.DEBUG else []
        return [s.strip() for s in self.CORS_ORIGINS.split(",") if s.strip()]

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./attendance.db"
    DB_POOL_SIZE: int = Field(default=20, ge=5, le=100)
    DB_MAX_OVERFLOW: int = Field(default=30, ge=5, le=100)
    DB_POOL_RECYCLE: int = Field(default=3600, ge=300)
    AUTO_CREATE_TABLES: bool = True

    # Security
    SECRET_KEY: str = Field(min_length=8)
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, ge=15, le=1440)

    # QR codes
    QR_SECRET: str = Field(default="default-qr-secret", min_length=8)
    QR_VALIDITY_DAYS: int = Field(default=365, ge=1, le=3650)
    QR_SUPPORTED_VERSIONS: str = "1.0"
    QR_DEFAULT_BOX_SIZE: int = Field(default=10, ge=1, le=50)
    QR_DEFAULT_BORDER: int = Field(default=1, ge=0, le=20)
    QR_DEFAULT_ERROR_CORRECTION: str = Field(default="M", pattern="^[LMQH]$")

    @property
    def qr_supported_versions_list(self) -> List[str]:
        return [v.strip() for v in self.QR_SUPPORTED_VERSIONS.split(",") if v.strip()]

    # Attendance rules
    TIMEZONE: str = "America/New_York"
    DAY_START_MINUTE: int = Field(default=480, ge=0, le=1439)  # 08:00
    SCAN_RETENTION_DAYS: int = Field(default=7, ge=1, le=365)
    DEFAULT_SCAN_LOCATION: str = "Main Office"
    NOTIFY_ON_SCAN: bool = True

    # Absentee sweep
    ABSENTEE_SCHEDULER_ENABLED: bool = True
    ABSENTEE_CUTOFF_TIME: str = Field(default="09:30", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    ABSENTEE_DAYS: str = "mon-fri"

    @property
    def absentee_cutoff(self) -> tuple:
        """(hour, minute) of the daily absentee cutoff"""
        hour, minute = self.ABSENTEE_CUTOFF_TIME.split(":")
        return int(hour), int(minute)

    # Notifications
    NOTIFICATION_MAX_RETRIES: int = Field(default=3, ge=0, le=10)
    NOTIFICATION_CHANNELS: str = "sms,email"

    @property
    def notification_channels_list(self) -> List[str]:
        return [c.strip().lower() for c in self.NOTIFICATION_CHANNELS.split(",") if c.strip()]

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    TWILIO_API_URL: str = "https://api.twilio.com/2010-04-01"
    SMS_TIMEOUT: int = Field(default=10, ge=1, le=120)

    # Email
    EMAIL_FROM: Optional[str] = None
    EMAIL_NAME: str = "QR Attendance System"
    EMAIL_HOST: Optional[str] = None
    EMAIL_PORT: int = Field(default=587, ge=1, le=65535)
    EMAIL_USER: Optional[str] = None
    EMAIL_PASSWORD: Optional[str] = None
    EMAIL_USE_TLS: bool = True
    EMAIL_USE_SSL: bool = False
    EMAIL_TIMEOUT: int = Field(default=30, ge=5, le=300)

    # Monitoring
    LOG_LEVEL: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    # Server
    PORT: Optional[int] = Field(default=8000, ge=1, le=65535)

    @validator('SECRET_KEY', 'QR_SECRET')
    def validate_secrets(cls, v):
        """Ensure secrets are strong enough"""
        if len(v) < 8:
            raise ValueError('Secret keys must be at least 8 characters long')
        if len(v) < 32:
            import warnings
            warnings.warn(f"Secret key is only {len(v)} characters. Consider using at least 32 characters for production.", UserWarning)
        return v

    @validator('DATABASE_URL')
    def validate_database_url(cls, v):
        """Validate database URL format"""
        if not v.startswith(('postgresql+asyncpg://', 'sqlite+aiosqlite://')):
            raise ValueError('Unsupported database URL format (use an async driver)')
        return v

    @validator('TIMEZONE')
    def validate_timezone(cls, v):
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f'Unknown timezone: {v}')
        return v

    @validator('ABSENTEE_DAYS')
    def validate_absentee_days(cls, v):
        allowed = {"mon", "tue", "wed", "thu", "fri", "sat", "sun"}
        for part in v.replace("-", ",").split(","):
            if part.strip().lower() not in allowed:
                raise ValueError(f'Invalid weekday in ABSENTEE_DAYS: {part}')
        return v.lower()

    @validator('CORS_ORIGINS')
    def validate_cors_origins(cls, v):
        """Validate CORS origins in production"""
        environment = os.getenv('ENVIRONMENT', 'development')
        if environment == 'production' and ('*' in v or not v):
            raise ValueError('Wildcard CORS origins not allowed in production')
        return v

    @property
    def sms_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_PHONE_NUMBER)

    @property
    def email_configured(self) -> bool:
        return bool(self.EMAIL_HOST and (self.EMAIL_FROM or self.EMAIL_USER))

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
