"""
Notification settings router.

Mounts under ``/api/notifications`` (prefix set in ``main.py``).

GET  /templates  — Effective templates (defaults merged with stored overrides).
PUT  /templates  — Replace the stored overrides (MANAGER).
GET  /smtp       — Relay settings in effect; the password is never returned (MANAGER).
PUT  /smtp       — Store relay settings; the password is write-only (MANAGER).
POST /test-email — Send a test message through the relay in effect (MANAGER).
"""

from __future__ import annotations

import logging
import smtplib
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.common import MessageResponse
from app.schemas.notification import (
    SendTestEmailRequest,
    SmtpSettingsResponse,
    SmtpSettingsUpdate,
    TemplatesPayload,
)
from app.services import notification_service
from app.services.auth_service import require_role

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


@router.get("/templates", response_model=TemplatesPayload, summary="Get notification templates")
def get_templates(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> TemplatesPayload:
    return TemplatesPayload(templates=notification_service.load_templates(db))


@router.put("/templates", response_model=TemplatesPayload, summary="Update notification templates")
def update_templates(
    body: TemplatesPayload,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> TemplatesPayload:
    logger.info("PUT /notifications/templates by user=%s", current_user.id)
    templates = notification_service.save_templates(db, body.to_plain())
    return TemplatesPayload(templates=templates)


@router.get("/smtp", response_model=SmtpSettingsResponse, summary="Get SMTP relay settings")
def get_smtp_settings(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> SmtpSettingsResponse:
    return SmtpSettingsResponse(**notification_service.smtp_settings_view(db))


@router.put("/smtp", response_model=SmtpSettingsResponse, summary="Update SMTP relay settings")
def update_smtp_settings(
    body: SmtpSettingsUpdate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> SmtpSettingsResponse:
    logger.info("PUT /notifications/smtp by user=%s", current_user.id)
    view = notification_service.save_smtp_settings(db, body.model_dump())
    return SmtpSettingsResponse(**view)


@router.post("/test-email", response_model=MessageResponse, summary="Send a test email")
def send_test_email(
    body: SendTestEmailRequest,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> MessageResponse:
    logger.info("POST /notifications/test-email to=%s by user=%s", body.to, current_user.id)
    try:
        stored = notification_service.stored_smtp_settings(db)
        transport = notification_service.build_transport(stored)
        transport.deliver(
            [body.to],
            "Expense Ledger test email",
            "This is a test message from the Expense Ledger notification settings.",
        )
    except (smtplib.SMTPException, OSError, ValueError) as exc:
        logger.warning("Test email to %s failed: %s", body.to, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"SMTP delivery failed: {exc}",
        ) from exc
    return MessageResponse(
        message="Test email sent",
        detail=type(transport).__name__,
    )
