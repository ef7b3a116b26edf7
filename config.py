"""
Runtime configuration for the storefront API.

Everything is read from environment variables once, when the app is built.
"""

import os
import re
from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel, Field


_DURATION_RE = re.compile(r"^\s*(\d+)\s*([dhms]?)\s*$")
_DURATION_UNITS = {"d": "days", "h": "hours", "m": "minutes", "s": "seconds", "": "seconds"}


def parse_duration(value: str) -> timedelta:
    """Parse token lifetimes such as "7d", "12h", "30m" or a bare number of seconds."""
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class Settings(BaseModel):
    port: int = 8000
    database_url: Optional[str] = None
    database_name: Optional[str] = None

    jwt_secret: str = "your_jwt_secret_key_here_change_in_production"
    jwt_expire: str = "7d"
    admin_secret: str = "admin123"

    default_country_code: str = "91"
    backend_url: str = ""
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    uploads_dir: str = Field(default_factory=lambda: os.path.join(os.getcwd(), "uploads"))
    upload_storage: str = Field("disk", description="disk or mongodb; Cloudinary wins when configured")
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    placeholder_image_url: str = "https://via.placeholder.com/600x600?text=No+Image"

    pdf_dir: str = Field(default_factory=lambda: os.path.join(os.getcwd(), "temp"))
    logo_path: Optional[str] = None
    store_name: str = "Padmavati Creations"
    store_address: List[str] = Field(
        default_factory=lambda: ["E10, Global Market", "Surat, Gujarat 395001", "Phone: +91 9104052511"]
    )
    currency: str = "Rs."

    email_service: str = "mailtrap"
    email_user: str = ""
    email_password: str = ""
    mailtrap_user: str = ""
    mailtrap_pass: str = ""
    ethereal_user: str = ""
    ethereal_pass: str = ""
    brevo_user: str = ""
    brevo_api_key: str = ""
    sendgrid_api_key: str = ""
    mail_from: str = ""

    log_level: str = "INFO"

    @property
    def token_lifetime(self) -> timedelta:
        return parse_duration(self.jwt_expire)

    @property
    def cloudinary_enabled(self) -> bool:
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        values = {
            "port": int(env.get("PORT", 8000)),
            "database_url": env.get("DATABASE_URL"),
            "database_name": env.get("DATABASE_NAME"),
            "logo_path": env.get("LOGO_PATH") or None,
        }
        plain = {
            "jwt_secret": "JWT_SECRET",
            "jwt_expire": "JWT_EXPIRE",
            "admin_secret": "ADMIN_SECRET",
            "default_country_code": "DEFAULT_COUNTRY_CODE",
            "backend_url": "BACKEND_URL",
            "uploads_dir": "UPLOADS_DIR",
            "upload_storage": "UPLOAD_STORAGE",
            "cloudinary_cloud_name": "CLOUDINARY_CLOUD_NAME",
            "cloudinary_api_key": "CLOUDINARY_API_KEY",
            "cloudinary_api_secret": "CLOUDINARY_API_SECRET",
            "placeholder_image_url": "PLACEHOLDER_IMAGE_URL",
            "pdf_dir": "PDF_DIR",
            "store_name": "STORE_NAME",
            "currency": "CURRENCY",
            "email_service": "EMAIL_SERVICE",
            "email_user": "EMAIL_USER",
            "email_password": "EMAIL_PASSWORD",
            "mailtrap_user": "MAILTRAP_USER",
            "mailtrap_pass": "MAILTRAP_PASS",
            "ethereal_user": "ETHEREAL_USER",
            "ethereal_pass": "ETHEREAL_PASS",
            "brevo_user": "BREVO_USER",
            "brevo_api_key": "BREVO_API_KEY",
            "sendgrid_api_key": "SENDGRID_API_KEY",
            "mail_from": "MAIL_FROM",
            "log_level": "LOG_LEVEL",
        }
        for field, var in plain.items():
            # blank values fall back to defaults
            if env.get(var, "").strip():
                values[field] = env[var].strip()
        if env.get("CORS_ORIGINS", "").strip():
            values["cors_origins"] = [o.strip() for o in env["CORS_ORIGINS"].split(",") if o.strip()]
        return cls(**values)
