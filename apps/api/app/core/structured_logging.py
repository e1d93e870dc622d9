"""Structured logging helpers (PII-safe)."""

import logging
from typing import Any

from app.core.security import mask_email

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure root logging for CLI and server entry points."""
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def build_log_context(
    *,
    user_id: str | None = None,
    email: str | None = None,
    job_id: str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (emails are fingerprinted)."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if email:
        context["email"] = mask_email(email)
    if job_id:
        context["job_id"] = job_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
