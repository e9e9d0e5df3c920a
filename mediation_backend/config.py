"""
Configuration for Mediation Backend
===================================

Environment variables:
- ENVIRONMENT: development|production (default: development)
- LOG_LEVEL: logging level name (default: INFO)
- JWT_SECRET_KEY: secret for access tokens
- CONSENT_SECRET: secret for opposite-party consent links
- CONSENT_VALID_DAYS: consent link validity window (default: 7)
- APP_URL: public client URL used to build consent links
- CASE_NUMBER_PREFIX: prefix for case numbers (default: RIT)
- SMTP_HOST / SMTP_PORT / SMTP_USER / SMTP_PASSWORD / SMTP_FROM / SMTP_USE_TLS
- SMS_PROVIDER: dev|twilio (default: dev)
- TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN / SMS_FROM

DATABASE_URL is read by the session layer directly (see db/session.py).
"""

from typing import List
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "dev-secret-key-change-in-production"
DEFAULT_CONSENT_SECRET = "dev-consent-secret"


class Settings(BaseSettings):
    """Application settings from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"

    # JWT
    jwt_secret_key: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    # Consent links
    consent_secret: str = DEFAULT_CONSENT_SECRET
    consent_valid_days: int = 7
    app_url: str = "http://localhost:5173"

    # Case numbering
    case_number_prefix: str = "RIT"
    case_number_max_attempts: int = 10

    # HTTP
    enforce_https: bool = False
    hsts_max_age: int = 31536000  # 1 year

    # CORS (comma separated)
    cors_allow_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"

    # Email
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@resolveit.local"
    smtp_use_tls: bool = True

    # SMS
    sms_provider: str = "dev"  # dev | twilio
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    sms_from: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    def cors_origins(self) -> List[str]:
        origins: List[str] = []
        for item in self.cors_allow_origins.split(","):
            origin = item.strip().strip('"').strip("'").rstrip("/")
            if origin:
                origins.append(origin)
        return origins

    def consent_url(self, token: str) -> str:
        """Public link the opposite party follows to answer a consent request"""
        return f"{self.app_url.rstrip('/')}/consent/{token}"

    def validate_config(self) -> List[str]:
        """Validate configuration, return list of warnings"""
        warnings = []

        if self.consent_secret == DEFAULT_CONSENT_SECRET:
            warnings.append("CONSENT_SECRET not set - using development default")
        if self.jwt_secret_key == DEFAULT_JWT_SECRET:
            warnings.append("JWT_SECRET_KEY not set - using development default")
        if self.consent_valid_days < 1:
            warnings.append("CONSENT_VALID_DAYS must be at least 1")

        if self.sms_provider == "twilio":
            if not (self.twilio_account_sid and self.twilio_auth_token and self.sms_from):
                warnings.append("SMS_PROVIDER=twilio but TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN/SMS_FROM not set")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
