"""OTP Verify — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./otp_verify.db"

    # ── OTP policy ────────────────────────────────────────
    otp_length: int = 6
    otp_lifetime_minutes: int = 5
    otp_daily_limit: int = 5
    otp_type: str = "register"

    # ── Expired-record cleanup ────────────────────────────
    cleanup_enabled: bool = True
    cleanup_interval_seconds: int = 3600

    # ── Request metadata ──────────────────────────────────
    trust_forwarded_headers: bool = True

    # ── Email delivery ────────────────────────────────────
    email_backend: str = "smtp"  # "smtp" or "mailjet"
    email_from: str = ""
    email_from_name: str = "OTP Service"
    otp_email_subject: str = "Your verification code"

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_start_tls: bool = True

    mailjet_api_key: str = ""
    mailjet_api_secret: str = ""
    mailjet_base_url: str = "https://api.mailjet.com"
    mailjet_custom_id: str = "OtpVerification"

    # ── App ───────────────────────────────────────────────
    app_name: str = "OTP Verify"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
