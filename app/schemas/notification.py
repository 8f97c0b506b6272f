"""
Pydantic v2 schemas for notification template and SMTP relay management.
"""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field

from app.schemas.common import CamelModel


class TemplateText(BaseModel):
    subject: str = Field(..., max_length=300)
    body: str = Field(..., max_length=5000)


class TemplatesPayload(BaseModel):
    """Templates keyed by trigger then language, e.g.
    ``{"NEW_INVOICE": {"en": {"subject": ..., "body": ...}}}``.
    """

    templates: dict[str, dict[str, TemplateText]]

    def to_plain(self) -> dict[str, dict[str, dict[str, str]]]:
        return {
            trigger: {lang: text.model_dump() for lang, text in languages.items()}
            for trigger, languages in self.templates.items()
        }


class SmtpSettingsUpdate(CamelModel):
    """Relay settings from the settings page.

    Leave ``password`` out to keep the stored one; send ``""`` to clear it.
    """

    server: str = Field(..., min_length=1, max_length=255)
    port: int = Field(..., ge=1, le=65535)
    user: str = Field(..., min_length=1, max_length=255)
    password: str | None = Field(default=None, max_length=255)
    from_name: str | None = Field(default=None, max_length=100)
    enabled: bool = True


class SmtpSettingsResponse(CamelModel):
    server: str
    port: int
    user: str
    from_name: str
    enabled: bool
    password_set: bool
    stored: bool = Field(..., description="False while the SMTP_* environment settings apply.")


class SendTestEmailRequest(CamelModel):
    to: EmailStr
