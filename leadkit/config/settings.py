from enum import Enum
from typing import Literal

from fastapi import Depends
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RecordBackend(str, Enum):
    SQL = "sql"
    MEMORY = "memory"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Lead Kit", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=True, description="Debug mode")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    workers: int = Field(default=1, description="Number of workers")

    # Record store
    record_backend: RecordBackend = Field(
        default=RecordBackend.SQL, description="Record store backend"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./leadkit.db",
        description="Database connection URL for the SQL record backend",
    )
    db_pool_size: int = Field(default=10, description="Database connection pool size")
    db_max_overflow: int = Field(default=20, description="Database max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Database pool timeout in seconds")
    db_pool_recycle: int = Field(default=3600, description="Database connection recycle time in seconds")
    database_auto_create: bool = Field(
        default=True, description="Create the record table on startup"
    )
    lead_store_name: str | None = Field(
        default=None, description="Record store namespace (defaults to lead-kit-<site>)"
    )

    # Site
    site_adapter: str = Field(default="contact", description="Registered site adapter")
    website_url: str | None = Field(
        default=None, description="Public site origin used to reach the background worker"
    )

    # Lead pipeline
    lead_background_path: str = Field(
        default="/v1/leads/background", description="Background worker endpoint path"
    )
    lead_max_attempts: int = Field(default=3, gt=0, description="Maximum processing attempts")
    lead_enqueue_timeout_ms: int = Field(
        default=8000, gt=0, description="Background trigger timeout"
    )
    pdf_enabled: bool = Field(default=True, description="Render a PDF for each lead")
    pdf_render_timeout_ms: int = Field(default=25000, gt=0, description="PDF render timeout")
    email_allow_without_pdf: bool = Field(
        default=True, description="Send the lead email even when the PDF failed"
    )
    email_require_pdf: bool = Field(
        default=False, description="Refuse to send the lead email without a PDF"
    )

    # SMTP
    smtp_host: str | None = Field(default=None, description="SMTP host")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_secure: bool | None = Field(
        default=None, description="Implicit TLS (defaults to port == 465)"
    )
    smtp_user: str | None = Field(default=None, description="SMTP username")
    smtp_pass: str | None = Field(default=None, description="SMTP password")
    smtp_tls_reject_unauthorized: bool = Field(
        default=True, description="Verify the SMTP server certificate"
    )
    smtp_connection_timeout_ms: int = Field(default=8000, gt=0)
    smtp_greeting_timeout_ms: int = Field(default=8000, gt=0)
    smtp_socket_timeout_ms: int = Field(default=15000, gt=0)
    smtp_verify: bool = Field(default=False, description="Probe the SMTP channel before sending")

    # Lead email
    lead_to_email: str | None = Field(default=None, description="Recipients, comma separated")
    lead_from_email: str | None = Field(default=None, description="Sender address")
    lead_email_subject: str | None = Field(default=None, description="Fixed subject")
    lead_email_subject_prefix: str | None = Field(default=None, description="Subject prefix")
    lead_pdf_filename: str | None = Field(default=None, description="PDF attachment filename")
    lead_email_inline_logo: bool = Field(default=True, description="Attach the inline logo")
    lead_email_logo_path: str | None = Field(default=None, description="Inline logo path")

    @property
    def smtp_implicit_tls(self) -> bool:
        if self.smtp_secure is not None:
            return self.smtp_secure
        return self.smtp_port == 465

    def model_post_init(self, __context) -> None:
        """Validate settings after initialization."""
        # The worker origin must not come from a client-supplied Host header
        if self.environment == "production" and not (self.website_url or "").strip():
            raise ValueError(
                "WEBSITE_URL is required in production environment so the "
                "background worker is never addressed through the request Host header."
            )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Dependency injection function for settings."""
    return settings


# Convenience type alias for dependency injection
SettingsDep = Depends(get_settings)
