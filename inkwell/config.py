"""Centralized configuration: every env var is read here, once."""

import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _csv(name: str, default: str = "") -> List[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]


def _flag(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v in (None, ""):
        return default
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.environment: str = os.getenv("ENVIRONMENT", "local")
        self.app_version: str = os.getenv("APP_VERSION", "1.0.0")
        self.cors_origins: List[str] = _csv("CORS_ORIGINS", "*")

        # Sessions
        self.secret_key: str = os.getenv("SECRET_KEY", "dev-only-insecure-key")
        self.sessions_https_only: bool = _flag("SESSIONS_HTTPS_ONLY")

        # Database
        self.database_url: str = os.getenv("DATABASE_URL", "sqlite:///./inkwell.db")

        # Auth
        self.admin_emails = {e.lower() for e in _csv("ADMIN_EMAILS")}
        self.google_client_id: Optional[str] = os.getenv("GOOGLE_CLIENT_ID")
        self.google_client_secret: Optional[str] = os.getenv("GOOGLE_CLIENT_SECRET")
        self.google_redirect_uri: Optional[str] = os.getenv("GOOGLE_REDIRECT_URI")
        self.login_success_redirect: str = os.getenv("LOGIN_SUCCESS_REDIRECT", "/")

        # OpenAI
        self.openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
        self.openai_model: str = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")
        self.openai_image_model: str = os.getenv("OPENAI_IMAGE_MODEL", "dall-e-3")

        # Cross-posting
        self.ghost_api_url: Optional[str] = os.getenv("GHOST_API_URL")
        self.ghost_admin_api_key: Optional[str] = os.getenv("GHOST_ADMIN_API_KEY")
        self.wordpress_api_url: Optional[str] = os.getenv("WORDPRESS_API_URL")
        self.wordpress_username: Optional[str] = os.getenv("WORDPRESS_USERNAME")
        self.wordpress_app_password: Optional[str] = os.getenv("WORDPRESS_APP_PASSWORD")
        self.blogger_blog_id: Optional[str] = os.getenv("BLOGGER_BLOG_ID")
        self.blogger_access_token: Optional[str] = os.getenv("BLOGGER_ACCESS_TOKEN")
        self.medium_integration_token: Optional[str] = os.getenv("MEDIUM_INTEGRATION_TOKEN")
        self.http_timeout: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))

        # Google Cloud
        self.gcs_bucket_name: Optional[str] = os.getenv("GCS_BUCKET_NAME")
        self.bigquery_audit_table: Optional[str] = os.getenv("BIGQUERY_AUDIT_TABLE")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def google_oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_redirect_uri)

    def validate(self) -> List[str]:
        """Return list of unset env vars for optional integrations."""
        optional = {
            "OPENAI_API_KEY": self.openai_api_key,
            "GCS_BUCKET_NAME": self.gcs_bucket_name,
            "GOOGLE_CLIENT_ID": self.google_client_id,
        }
        missing = [var for var, value in optional.items() if not value]
        if self.is_production and self.secret_key == "dev-only-insecure-key":
            missing.append("SECRET_KEY")
        return missing


settings = Settings()
