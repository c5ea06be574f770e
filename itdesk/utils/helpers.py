"""Shared utility functions for services and blueprints.

parse_date_input:  strict date parsing (raises ValueError on bad input)
parse_decimal:     money/number coercion (raises ValueError on bad input)
unit_of_work:      commit-or-rollback context manager for service operations
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from itdesk.models import db

logger = logging.getLogger(__name__)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date_input(value):
    """Parse a date/datetime string, raising ValueError on bad input.

    Supports: YYYY-MM-DD, full ISO datetimes, DD.MM.YYYY, date and datetime
    objects.  Returns a ``datetime`` in UTC (naive input is taken as UTC,
    offsets are converted) or None for empty input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text, "%d.%m.%Y")
        except ValueError as exc:
            raise ValueError(
                "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
            ) from exc
    return _to_utc(parsed)


def parse_decimal(value):
    """Coerce ``value`` to a Decimal, raising ValueError on bad input.

    Floats are routed through ``str`` so 0.1 stays 0.1.  Empty input → None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("Boolean is not a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"Invalid number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid number: {value!r}")
    return result


# ── Database transaction helper ──────────────────────────────────────────────

@contextmanager
def unit_of_work(label: str):
    """Run a service operation as a single transaction.

    Commits when the block exits normally; rolls back and re-raises on any
    exception, so a failed phase advance never leaves the stage write behind.

    Usage::

        with unit_of_work("rkb.approve"):
            ...mutations + flush...
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.debug("Rolled back %s", label)
        raise
