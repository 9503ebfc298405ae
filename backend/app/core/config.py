from pydantic_settings import BaseSettings
from typing import List, Optional, Any
from pydantic import field_validator
import json


class Settings(BaseSettings):
    # Branding
    app_name: str = "Mini Habits"
    frontend_url: str = "http://localhost:3000"

    # Database
    database_url: str = "sqlite:///./minihabits.db"

    # Security
    jwt_secret: str = "minihabits-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 30  # 30 days
    cookie_domain: Optional[str] = None  # None allows all domains for development
    cookie_secure: bool = False  # False for HTTP development
    cookie_samesite: str = "lax"
    cors_origins: List[str] = ["http://localhost:3000"]

    # Reminder job
    cron_secret: Optional[str] = None
    default_timezone: str = "Asia/Jakarta"
    local_scheduler_enabled: bool = False
    local_scheduler_interval_s: int = 60

    # WhatsApp gateway (GOWA)
    gowa_url: str = "https://gowa.leadflow.id"
    gowa_user: str = ""
    gowa_pass: str = ""
    messaging_timeout_s: float = 10.0

    # Phone verification
    otp_expiry_minutes: int = 5

    # Generative model
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_default_model: str = "gemini-1.5-flash"
    gemini_allowed_models: List[str] = [
        "gemini-1.5-flash",
        "gemini-1.5-pro",
        "gemini-2.0-flash",
        "gemini-2.0-flash-exp",
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
        "gemini-pro",
    ]
    llm_timeout_s: float = 60.0

    log_level: str = "INFO"

    class Config:
        env_file = ".env"

    @field_validator("cors_origins", "gemini_allowed_models", mode="before")
    @classmethod
    def _parse_list(cls, v: Any) -> Any:
        """Allow list settings to be provided as JSON array or comma-separated string."""
        if isinstance(v, str):
            sv = v.strip()
            if not sv:
                return []
            if sv.startswith("["):
                try:
                    parsed = json.loads(sv)
                    if isinstance(parsed, list):
                        return parsed
                except ValueError:
                    pass
            # Fallback: comma-separated
            return [s.strip() for s in sv.split(",") if s.strip()]
        return v


settings = Settings()
