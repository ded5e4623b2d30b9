import os
import re
from datetime import timedelta
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> timedelta:
    """Parse "15m", "7d", "3600" style durations."""
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit])


def _split(value: Optional[str]) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


class Settings(BaseModel):
    environment: str = "development"
    log_level: str = "INFO"

    database_url: Optional[str] = None
    database_name: Optional[str] = None

    jwt_access_secret: str = "change-me-access"
    jwt_refresh_secret: str = "change-me-refresh"
    jwt_access_expiry: str = "15m"
    jwt_refresh_expiry: str = "7d"
    reset_token_exp_min: int = 30
    bcrypt_rounds: int = Field(12, ge=4, le=31)

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_timeout_seconds: float = Field(10, gt=0)
    mail_from: str = "no-reply@example.com"
    admin_emails: List[str] = Field(default_factory=list)

    frontend_url: str = "http://localhost:5173"
    site_url: str = "http://localhost:5173"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    cloudinary_url: Optional[str] = None
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None

    auth_rate_limit_max: int = 5
    auth_rate_limit_window_seconds: int = 900

    # "permissive" lets an admin set any status; "strict" enforces the transition table
    order_status_policy: str = Field("permissive", pattern="^(permissive|strict)$")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_access_expiry)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_refresh_expiry)

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_pass)

    @property
    def cloudinary_configured(self) -> bool:
        if self.cloudinary_url:
            return True
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key)


def load_settings() -> Settings:
    env = os.environ
    values = {
        "environment": env.get("ENVIRONMENT", "development"),
        "log_level": env.get("LOG_LEVEL", "INFO"),
        "database_url": env.get("DATABASE_URL"),
        "database_name": env.get("DATABASE_NAME"),
        "jwt_access_secret": env.get("JWT_ACCESS_SECRET", "change-me-access"),
        "jwt_refresh_secret": env.get("JWT_REFRESH_SECRET", "change-me-refresh"),
        "jwt_access_expiry": env.get("JWT_ACCESS_EXPIRY", "15m"),
        "jwt_refresh_expiry": env.get("JWT_REFRESH_EXPIRY", "7d"),
        "reset_token_exp_min": int(env.get("RESET_TOKEN_EXP_MIN", 30)),
        "bcrypt_rounds": int(env.get("BCRYPT_ROUNDS", 12)),
        "smtp_host": env.get("SMTP_HOST"),
        "smtp_port": int(env.get("SMTP_PORT", 587)),
        "smtp_user": env.get("SMTP_USER"),
        "smtp_pass": env.get("SMTP_PASS"),
        "smtp_timeout_seconds": float(env.get("SMTP_TIMEOUT_SECONDS", 10)),
        "mail_from": env.get("MAIL_FROM", "no-reply@example.com"),
        "admin_emails": _split(env.get("ADMIN_EMAILS")),
        "frontend_url": env.get("FRONTEND_URL", "http://localhost:5173"),
        "site_url": env.get("SITE_URL", env.get("FRONTEND_URL", "http://localhost:5173")),
        "cors_origins": _split(env.get("CORS_ORIGINS")) or ["*"],
        "cloudinary_url": env.get("CLOUDINARY_URL"),
        "cloudinary_cloud_name": env.get("CLOUDINARY_CLOUD_NAME"),
        "cloudinary_api_key": env.get("CLOUDINARY_API_KEY"),
        "cloudinary_api_secret": env.get("CLOUDINARY_API_SECRET"),
        "auth_rate_limit_max": int(env.get("AUTH_RATE_LIMIT_MAX", 5)),
        "auth_rate_limit_window_seconds": int(env.get("AUTH_RATE_LIMIT_WINDOW_SECONDS", 900)),
        "order_status_policy": env.get("ORDER_STATUS_POLICY", "permissive"),
    }
    return Settings(**values)
