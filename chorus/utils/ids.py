"""Identifier and timestamp helpers."""

from datetime import UTC, datetime

from cuid2 import cuid_wrapper

cuid = cuid_wrapper()


def new_id() -> str:
    """Generate a new CUID-based record identifier."""
    return cuid()


def utc_now() -> datetime:
    return datetime.now(UTC)
