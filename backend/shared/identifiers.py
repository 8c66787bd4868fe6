"""Identifier and reference-number generation."""

import uuid
from datetime import datetime
from typing import Optional

from .clock import utc_now


def new_id() -> str:
    return str(uuid.uuid4())


def generate_reference(prefix: str, now: Optional[datetime] = None) -> str:
    """
    Human-readable reference such as ``INV-2024-0601-3F9A1C``.

    The date part is ``yyyy-MMdd``; the suffix is six uppercase hex digits
    from a fresh UUID. Uniqueness is enforced by the store's unique key,
    callers retry on collision.
    """
    stamp = (now or utc_now()).strftime("%Y-%m%d")
    suffix = uuid.uuid4().hex[:6].upper()
    return f"{prefix}-{stamp}-{suffix}"
