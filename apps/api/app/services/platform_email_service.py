"""Platform email sender (claim verification, invites, sign-in links, reminders).

Every outbound email is recorded in EmailLog before the Resend call so the
log doubles as the idempotency store and the source for resend cooldowns.
Without PLATFORM_RESEND_API_KEY in dev, emails are logged instead of sent.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import mask_email
from app.db.enums import EmailKind, EmailStatus
from app.db.models import EmailLog
from app.services.http_service import DEFAULT_RETRY_STATUSES, error_detail, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0
DEFAULT_FROM = "onboarding@resend.dev"


def _html_to_text(content: str) -> str:
    """Convert HTML into readable text for the plain-text alternative."""
    import html as html_module
    import re

    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", content, flags=re.DOTALL | re.I)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return html_module.unescape(text)


def platform_sender_configured() -> bool:
    return bool(settings.PLATFORM_RESEND_API_KEY)


def _result_from_log(log: EmailLog) -> dict:
    success = log.status == EmailStatus.SENT.value
    return {
        "success": success,
        "message_id": log.external_id,
        "email_log_id": log.id,
        "error": None if success else (log.error or "Email send failed"),
    }


async def _send_resend_email(
    *,
    to_email: str,
    subject: str,
    html: str,
    text: str | None,
    idempotency_key: str | None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    api_key = settings.PLATFORM_RESEND_API_KEY
    if not api_key:
        if settings.ENV == "dev":
            logger.info(
                "Email sender not configured; logging instead of sending to=%s subject=%r",
                mask_email(to_email),
                subject,
            )
            return {"success": True, "message_id": None}
        return {
            "success": False,
            "error": "Platform email sender not configured (missing PLATFORM_RESEND_API_KEY)",
        }

    payload: dict[str, object] = {
        "from": (settings.PLATFORM_EMAIL_FROM or "").strip() or DEFAULT_FROM,
        "to": [to_email],
        "subject": subject,
        "html": html,
    }
    if text:
        payload["text"] = text

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key

    async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS, transport=transport) as client:

        async def request_fn() -> httpx.Response:
            return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

        response = await request_with_retries(
            request_fn,
            max_attempts=RESEND_MAX_ATTEMPTS,
            base_delay=RESEND_RETRY_BASE_DELAY,
            max_delay=RESEND_RETRY_MAX_DELAY,
            retry_statuses=DEFAULT_RETRY_STATUSES,
            service="resend",
        )

    if 200 <= response.status_code < 300:
        message_id = response.json().get("id")
        if isinstance(message_id, str) and message_id:
            return {"success": True, "message_id": message_id}
        return {"success": False, "error": "Resend API returned success without message id"}

    # Resend uses 409 for idempotency conflicts: the message already went out.
    if response.status_code == 409:
        return {"success": True, "message_id": None}

    detail = error_detail(response)
    if detail:
        return {"success": False, "error": f"Resend API error: {response.status_code} ({detail})"}
    return {"success": False, "error": f"Resend API error: {response.status_code}"}


def last_sent_at(
    db: Session,
    to_email: str,
    kinds: list[EmailKind],
) -> datetime | None:
    """Timestamp of the most recent successful email of the given kinds."""
    log = (
        db.query(EmailLog)
        .filter(
            EmailLog.recipient_email == to_email.lower(),
            EmailLog.kind.in_([k.value for k in kinds]),
            EmailLog.status == EmailStatus.SENT.value,
        )
        .order_by(EmailLog.created_at.desc())
        .first()
    )
    if not log:
        return None
    sent_at = log.sent_at or log.created_at
    if sent_at.tzinfo is None:
        sent_at = sent_at.replace(tzinfo=timezone.utc)
    return sent_at


def within_cooldown(
    db: Session,
    to_email: str,
    kinds: list[EmailKind],
    seconds: int | None = None,
) -> bool:
    """True when an email of these kinds went to this address inside the cooldown."""
    window = settings.CLAIM_EMAIL_COOLDOWN_SECONDS if seconds is None else seconds
    if window <= 0:
        return False
    sent_at = last_sent_at(db, to_email, kinds)
    if not sent_at:
        return False
    return datetime.now(timezone.utc) - sent_at < timedelta(seconds=window)


async def send_email_logged(
    *,
    db: Session,
    to_email: str,
    kind: EmailKind,
    subject: str,
    html: str,
    text: str | None = None,
    idempotency_key: str | None = None,
) -> dict:
    """
    Send a platform email with EmailLog tracking + idempotency.

    Returns:
        {"success": bool, "message_id": str | None, "email_log_id": UUID, "error"?: str}
    """
    to_email = to_email.lower()
    email_log = None
    if idempotency_key:
        existing = (
            db.query(EmailLog)
            .filter(EmailLog.idempotency_key == idempotency_key)
            .first()
        )
        if existing and existing.status != EmailStatus.FAILED.value:
            return _result_from_log(existing)
        # A failed send is retried under the same key
        email_log = existing

    if email_log is None:
        email_log = EmailLog(
            recipient_email=to_email,
            kind=kind.value,
            subject=subject,
            body=html,
            status=EmailStatus.PENDING.value,
            idempotency_key=idempotency_key,
        )
        db.add(email_log)
    else:
        email_log.subject = subject
        email_log.body = html
        email_log.status = EmailStatus.PENDING.value
        email_log.error = None

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = (
            db.query(EmailLog)
            .filter(EmailLog.idempotency_key == idempotency_key)
            .first()
        )
        if existing:
            return _result_from_log(existing)
        raise

    db.refresh(email_log)

    resolved_text = text
    if not (resolved_text or "").strip() and html:
        resolved_text = _html_to_text(html)

    try:
        result = await _send_resend_email(
            to_email=to_email,
            subject=subject,
            html=html,
            text=resolved_text,
            idempotency_key=idempotency_key,
        )
    except Exception as exc:
        email_log.status = EmailStatus.FAILED.value
        # Exception type only; request payloads carry PII.
        email_log.error = f"Platform email send failed: {exc.__class__.__name__}"
        logger.exception("Platform email send raised for email_log=%s", email_log.id)
        db.commit()
        return {
            "success": False,
            "error": email_log.error,
            "email_log_id": email_log.id,
        }

    if result.get("success"):
        email_log.status = EmailStatus.SENT.value
        email_log.external_id = result.get("message_id")
        email_log.sent_at = datetime.now(timezone.utc)
        email_log.error = None
        logger.info(
            "Platform email sent kind=%s to=%s email_log=%s",
            kind.value,
            mask_email(to_email),
            email_log.id,
        )
    else:
        email_log.status = EmailStatus.FAILED.value
        email_log.error = str(result.get("error") or "Email send failed")
        logger.warning("Platform email failed for email_log=%s", email_log.id)

    db.commit()

    return {
        **result,
        "email_log_id": email_log.id,
    }
