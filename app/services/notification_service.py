"""
Notification dispatch for budget ledger events.

The budget engine only knows the ``Notifier`` interface:
``send(trigger, variables, recipient_emails)``.  Behind it:

- ``NotificationDispatcher`` picks the subject/body template for the trigger
  and the configured language (falling back to English), substitutes
  ``{variable}`` placeholders and hands each message to a transport.
- ``SmtpTransport`` delivers over SMTP; ``LoggingTransport`` just logs the
  message and is used whenever SMTP is disabled.
- ``BackgroundNotifier`` defers the dispatch to a FastAPI background task so
  delivery happens after the response has been sent.

Template overrides edited by managers are stored in ``system_setting`` under
the key ``"templates"`` and merged over ``DEFAULT_TEMPLATES``.  Relay settings
edited by managers live under ``"smtp"`` (password Fernet-encrypted) and take
precedence over the ``SMTP_*`` environment settings.

Delivery is fire-and-forget: failures are logged and swallowed.
"""

from __future__ import annotations

import copy
import logging
import smtplib
from abc import ABC, abstractmethod
from collections.abc import Callable
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.system_setting import SystemSetting
from app.utils.constants import NOTIFICATION_LANGUAGES, NotificationTrigger
from app.utils.security import decrypt_secret, encrypt_secret

logger = logging.getLogger(__name__)

TEMPLATES_SETTING_KEY = "templates"
SMTP_SETTING_KEY = "smtp"

Templates = dict[str, dict[str, dict[str, str]]]

# ---------------------------------------------------------------------------
# Default templates (trigger -> language -> subject/body)
# ---------------------------------------------------------------------------

DEFAULT_TEMPLATES: Templates = {
    NotificationTrigger.NEW_INVOICE.value: {
        "en": {
            "subject": "New Expense Submitted: {vendor}",
            "body": (
                "A new expense from {vendor} for ${total} has been submitted by "
                "{userName} and is awaiting your approval."
            ),
        },
        "ar": {
            "subject": "تم تقديم مصروف جديد: {vendor}",
            "body": "تم تقديم مصروف جديد من {vendor} بمبلغ ${total} بواسطة {userName} وهو بانتظار موافقتك.",
        },
    },
    NotificationTrigger.EXPENSE_APPROVED.value: {
        "en": {
            "subject": "Expense Approved: {vendor}",
            "body": "Your expense from {vendor} for ${total} has been approved.",
        },
        "ar": {
            "subject": "تمت الموافقة على المصروف: {vendor}",
            "body": "تمت الموافقة على مصروفك من {vendor} بمبلغ ${total}.",
        },
    },
    NotificationTrigger.EXPENSE_REJECTED.value: {
        "en": {
            "subject": "Expense Rejected: {vendor}",
            "body": (
                "Your expense from {vendor} for ${total} has been rejected. "
                "Please review and contact your manager."
            ),
        },
        "ar": {
            "subject": "تم رفض المصروف: {vendor}",
            "body": "تم رفض مصروفك من {vendor} بمبلغ ${total}. يرجى المراجعة والتواصل مع مديرك.",
        },
    },
    NotificationTrigger.BUDGET_THRESHOLD.value: {
        "en": {
            "subject": "Budget Warning: {responsibilityName}",
            "body": 'The budget for "{responsibilityName}" has reached {usagePercentage}% of its limit.',
        },
        "ar": {
            "subject": "تحذير الميزانية: {responsibilityName}",
            "body": 'وصلت ميزانية "{responsibilityName}" إلى {usagePercentage}% من حدها.',
        },
    },
    NotificationTrigger.RESPONSIBILITY_ASSIGNED.value: {
        "en": {
            "subject": "New Financial Responsibility Assigned",
            "body": (
                'You have been assigned a new financial responsibility: '
                '"{responsibilityName}" with a budget of ${budget}.'
            ),
        },
        "ar": {
            "subject": "تم تعيين مسؤولية مالية جديدة",
            "body": 'تم تعيين مسؤولية مالية جديدة لك: "{responsibilityName}" بميزانية قدرها ${budget}.',
        },
    },
}


def render_template(template: str, variables: dict[str, Any]) -> str:
    """Replace each ``{name}`` with ``str(variables[name])``.

    Plain textual replacement: unknown placeholders stay as they are and
    other braces in the text are left alone, unlike ``str.format``.
    """
    rendered = template
    for name, value in variables.items():
        rendered = rendered.replace("{" + name + "}", str(value))
    return rendered


def merge_templates(overrides: Templates | None) -> Templates:
    """Overlay stored overrides on ``DEFAULT_TEMPLATES`` per trigger and language."""
    merged = copy.deepcopy(DEFAULT_TEMPLATES)
    for trigger, languages in (overrides or {}).items():
        if not isinstance(languages, dict):
            continue
        for language, texts in languages.items():
            if not isinstance(texts, dict):
                continue
            slot = merged.setdefault(trigger, {}).setdefault(language, {})
            slot.update({k: v for k, v in texts.items() if k in ("subject", "body")})
    return merged


# ---------------------------------------------------------------------------
# Stored settings: template overrides and SMTP relay
# ---------------------------------------------------------------------------


def _setting_row(db: Session, key: str) -> SystemSetting | None:
    return db.query(SystemSetting).filter(SystemSetting.key == key).first()


def load_templates(db: Session) -> Templates:
    """Return the effective templates: defaults plus stored overrides."""
    row = _setting_row(db, TEMPLATES_SETTING_KEY)
    return merge_templates(row.value if row is not None else None)


def save_templates(db: Session, templates: Templates) -> Templates:
    """Persist *templates* as the override set and return the effective templates."""
    row = _setting_row(db, TEMPLATES_SETTING_KEY)
    if row is None:
        row = SystemSetting(key=TEMPLATES_SETTING_KEY, value=templates)
        db.add(row)
    else:
        row.value = copy.deepcopy(templates)
    db.commit()
    logger.info("Notification templates updated (%d triggers)", len(templates))
    return merge_templates(templates)


def stored_smtp_settings(db: Session) -> dict[str, Any] | None:
    """Return the stored relay settings with the password decrypted, or None."""
    row = _setting_row(db, SMTP_SETTING_KEY)
    if row is None:
        return None
    stored = dict(row.value)
    token = stored.pop("password", "")
    stored["password"] = decrypt_secret(token) if token else ""
    return stored


def smtp_settings_view(db: Session) -> dict[str, Any]:
    """Relay settings as managers see them: never the password itself."""
    row = _setting_row(db, SMTP_SETTING_KEY)
    if row is None:
        settings = get_settings()
        return {
            "server": settings.SMTP_HOST,
            "port": settings.SMTP_PORT,
            "user": settings.SMTP_USER,
            "from_name": settings.SMTP_FROM_NAME,
            "enabled": settings.SMTP_ENABLED,
            "password_set": bool(settings.SMTP_PASSWORD),
            "stored": False,
        }
    value = row.value
    return {
        "server": value["server"],
        "port": value["port"],
        "user": value["user"],
        "from_name": value.get("fromName", get_settings().SMTP_FROM_NAME),
        "enabled": value.get("enabled", True),
        "password_set": bool(value.get("password")),
        "stored": True,
    }


def save_smtp_settings(db: Session, changes: dict[str, Any]) -> dict[str, Any]:
    """Store relay settings.

    A ``password`` of None keeps the stored one; an empty string clears it.
    """
    row = _setting_row(db, SMTP_SETTING_KEY)
    previous = row.value if row is not None else {}

    password = changes.get("password")
    if password is None:
        secret = previous.get("password", "")
    else:
        secret = encrypt_secret(password) if password else ""
    value = {
        "server": changes["server"],
        "port": changes["port"],
        "user": changes["user"],
        "fromName": changes.get("from_name") or get_settings().SMTP_FROM_NAME,
        "enabled": changes.get("enabled", True),
        "password": secret,
    }

    if row is None:
        db.add(SystemSetting(key=SMTP_SETTING_KEY, value=value))
    else:
        row.value = value
    db.commit()
    logger.info("SMTP settings updated: %s:%s as %s", value["server"], value["port"], value["user"])
    return smtp_settings_view(db)


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class MailTransport(ABC):
    @abstractmethod
    def deliver(self, recipients: list[str], subject: str, body: str) -> None: ...


class LoggingTransport(MailTransport):
    """Stand-in transport when SMTP is disabled: the message is only logged."""

    def deliver(self, recipients: list[str], subject: str, body: str) -> None:
        logger.info("Email (not sent) to=%s subject=%r", ", ".join(recipients), subject)
        logger.debug("Email body: %s", body)


class SmtpTransport(MailTransport):
    """Deliver through an SMTP relay.

    Port 465 uses implicit TLS; any other port connects in plain text and
    upgrades with STARTTLS.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_name: str,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_name = from_name
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        if self.port == 465:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        client = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        client.starttls()
        return client

    def deliver(self, recipients: list[str], subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = formataddr((self.from_name, self.user))
        message["To"] = ", ".join(recipients)
        message["Subject"] = subject
        message.set_content(body)

        with self._connect() as client:
            if self.password:
                client.login(self.user, self.password)
            client.send_message(message)
        logger.info("Email sent to %d recipient(s): %r", len(recipients), subject)


def build_transport(stored: dict[str, Any] | None = None) -> MailTransport:
    """Pick the transport: *stored* relay settings if given, else ``SMTP_*``."""
    settings = get_settings()
    if stored is not None:
        if not stored.get("enabled", True):
            return LoggingTransport()
        return SmtpTransport(
            host=stored["server"],
            port=int(stored["port"]),
            user=stored["user"],
            password=stored.get("password", ""),
            from_name=stored.get("fromName") or settings.SMTP_FROM_NAME,
        )
    if not settings.SMTP_ENABLED:
        return LoggingTransport()
    return SmtpTransport(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        user=settings.SMTP_USER,
        password=settings.SMTP_PASSWORD,
        from_name=settings.SMTP_FROM_NAME,
    )


# ---------------------------------------------------------------------------
# Notifier interface and implementations
# ---------------------------------------------------------------------------


class Notifier(ABC):
    """What the budget engine calls after a committed state change."""

    @abstractmethod
    def send(
        self,
        trigger: NotificationTrigger,
        variables: dict[str, Any],
        recipient_emails: list[str],
    ) -> None: ...


class NotificationDispatcher(Notifier):
    """Render the template for a trigger and deliver it synchronously.

    Args:
        templates_loader: Returns the effective templates; called on every
            send so edits through the API apply immediately.
        transport: Where rendered messages go.
        language: ``"en"`` or ``"ar"``; missing translations fall back
            to ``"en"``.
    """

    def __init__(
        self,
        templates_loader: Callable[[], Templates],
        transport: MailTransport,
        language: str = "en",
    ) -> None:
        self._templates_loader = templates_loader
        self._transport = transport
        self._language = language if language in NOTIFICATION_LANGUAGES else "en"

    def _template(self, trigger: NotificationTrigger) -> dict[str, str] | None:
        by_language = self._templates_loader().get(trigger.value) or {}
        return by_language.get(self._language) or by_language.get("en")

    def send(
        self,
        trigger: NotificationTrigger,
        variables: dict[str, Any],
        recipient_emails: list[str],
    ) -> None:
        recipients = [email for email in recipient_emails if email]
        if not recipients:
            logger.info("Notification %s has no recipients, skipped", trigger.value)
            return

        try:
            template = self._template(trigger)
            if template is None:
                logger.warning("No template for notification %s", trigger.value)
                return
            subject = render_template(template.get("subject", ""), variables)
            body = render_template(template.get("body", ""), variables)
            self._transport.deliver(recipients, subject, body)
        except Exception:
            logger.exception(
                "Notification %s to %d recipient(s) failed", trigger.value, len(recipients)
            )


class BackgroundNotifier(Notifier):
    """Queue ``dispatcher.send`` on FastAPI ``BackgroundTasks``."""

    def __init__(
        self,
        background_tasks: BackgroundTasks,
        dispatcher_factory: Callable[[], Notifier],
    ) -> None:
        self._background_tasks = background_tasks
        self._dispatcher_factory = dispatcher_factory

    def send(
        self,
        trigger: NotificationTrigger,
        variables: dict[str, Any],
        recipient_emails: list[str],
    ) -> None:
        self._background_tasks.add_task(
            _dispatch, self._dispatcher_factory, trigger, dict(variables), list(recipient_emails)
        )


def _dispatch(
    dispatcher_factory: Callable[[], Notifier],
    trigger: NotificationTrigger,
    variables: dict[str, Any],
    recipient_emails: list[str],
) -> None:
    try:
        dispatcher_factory().send(trigger, variables, recipient_emails)
    except Exception:
        logger.exception("Background notification %s failed", trigger.value)


def _with_fresh_session(loader: Callable[[Session], Any]) -> Any:
    # Background tasks run after the request session is closed.
    from app.database import SessionLocal

    db = SessionLocal()
    try:
        return loader(db)
    finally:
        db.close()


def _load_templates_fresh_session() -> Templates:
    return _with_fresh_session(load_templates)


def get_dispatcher() -> NotificationDispatcher:
    settings = get_settings()
    return NotificationDispatcher(
        templates_loader=_load_templates_fresh_session,
        transport=build_transport(_with_fresh_session(stored_smtp_settings)),
        language=settings.NOTIFICATION_LANGUAGE,
    )
