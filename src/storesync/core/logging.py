"""structlog configuration and PII masking helpers.

configure_structlog() renders JSON in production and human-readable console
output elsewhere. mask_pii() scrubs personal fields from payload snapshots
before they are persisted on sync tasks; mask_email() shortens addresses for
log lines.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import structlog

from src.storesync.config import Environment, get_settings

SENSITIVE_FIELDS = frozenset(
    {
        "email",
        "phone",
        "first_name",
        "last_name",
        "billing_address",
        "shipping_address",
        "gst_number",
        "gst_no",
        "contact_name",
        "company_name",
        "address",
        "zip",
        "city",
        "state",
        "Email",
        "Phone",
        "First_Name",
        "Last_Name",
        "Company",
        "GST_No",
    }
)

MASK = "***"

_EMAIL_RE = re.compile(r"^(.{2}).+(@.+)$")


def configure_structlog() -> None:
    """Configure structlog processors based on environment."""
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.ENVIRONMENT == Environment.production:
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def mask_email(email: str | None) -> str | None:
    """Shorten an email for logging: ``jane.doe@example.com`` -> ``ja***@example.com``."""
    if not email:
        return email
    return _EMAIL_RE.sub(r"\1***\2", email)


def mask_pii(data: Any) -> Any:
    """Recursively replace values of personal fields with a mask.

    Dicts and lists are copied, never mutated. Scalars pass through.
    """
    if isinstance(data, dict):
        masked: dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_FIELDS and value not in (None, ""):
                masked[key] = MASK
            else:
                masked[key] = mask_pii(value)
        return masked
    if isinstance(data, list):
        return [mask_pii(item) for item in data]
    return data
