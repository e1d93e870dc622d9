"""Utility modules."""

from app.utils.datetime_parsing import ensure_utc, isoformat_utc, parse_iso_datetime
from app.utils.normalization import (
    is_valid_email,
    normalize_email,
    normalize_name,
)
from app.utils.pagination import (
    PaginationParams,
    get_pagination,
    paginate_query,
)

__all__ = [
    # Datetimes
    "ensure_utc",
    "isoformat_utc",
    "parse_iso_datetime",
    # Normalization
    "is_valid_email",
    "normalize_email",
    "normalize_name",
    # Pagination
    "PaginationParams",
    "get_pagination",
    "paginate_query",
]
