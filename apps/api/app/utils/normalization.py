"""Data normalization utilities for imported directory data and user input."""

import re
from typing import Optional


# Basic address shape: local@domain.tld, no whitespace
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    normalized = email.strip().lower()
    return normalized or None


def is_valid_email(email: Optional[str]) -> bool:
    """True when the (normalized) email matches the basic address shape."""
    normalized = normalize_email(email)
    return bool(normalized and EMAIL_PATTERN.match(normalized))


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Args:
        name: Raw name input

    Returns:
        Cleaned name or None if empty
    """
    if not name:
        return None
    return " ".join(name.split()) or None


def normalize_search_text(value: Optional[str]) -> Optional[str]:
    """
    Normalize free-text for search matching.

    - Lowercase
    - Collapse whitespace
    """
    if not value:
        return None
    collapsed = " ".join(value.split())
    if not collapsed:
        return None
    return collapsed.lower()


def clean_text(value: object, max_length: int | None = None) -> Optional[str]:
    """Strip an optional string from an external payload; non-strings become None."""
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if max_length is not None:
        cleaned = cleaned[:max_length]
    return cleaned
