"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", env_file_encoding="utf-8"
    )

    db_path: Path = Field(
        default=Path("state/digest.sqlite"), validation_alias="DIGEST_DB_PATH"
    )
    smtp_host: str | None = Field(default=None, validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=587, validation_alias="SMTP_PORT")
    smtp_user: str | None = Field(default=None, validation_alias="SMTP_USER")
    smtp_password: str | None = Field(default=None, validation_alias="SMTP_PASSWORD")
    smtp_from_email: str | None = Field(
        default=None, validation_alias="SMTP_FROM_EMAIL"
    )
    smtp_from_name: str = Field(
        default="Intelligence Digest", validation_alias="SMTP_FROM_NAME"
    )
    feedback_base_url: str | None = Field(
        default=None, validation_alias="FEEDBACK_BASE_URL"
    )

    @property
    def smtp_configured(self) -> bool:
        """Check whether every SMTP setting needed to send mail is present."""
        return all(
            [
                self.smtp_host,
                self.smtp_user,
                self.smtp_password,
                self.smtp_from_email or self.smtp_user,
            ]
        )


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
