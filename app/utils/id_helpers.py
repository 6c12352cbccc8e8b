"""Identifier helpers for mail groups, tasks, jobs and tracking numbers."""

import re
import string

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_BASE36_DIGITS = string.digits + string.ascii_uppercase


def sanitize_id_segment(value: str | None) -> str:
    sanitized = _NON_ALNUM.sub("", value or "none").upper()
    return sanitized or "NONE"


def build_group_key(sender_id: str | None, recipient_id: str | None) -> str:
    return f"{sender_id or 'none'}::{recipient_id or 'none'}"


def build_mail_group_id(sender_id: str | None, recipient_id: str | None) -> str:
    return f"MAIL-{sanitize_id_segment(sender_id)}-{sanitize_id_segment(recipient_id)}"


def build_task_id(sender_id: str | None, recipient_id: str | None) -> str:
    return f"TASK-{sanitize_id_segment(sender_id)}-{sanitize_id_segment(recipient_id)}"


def to_base36(value: int) -> str:
    """Upper-case base-36 rendering of a non-negative integer."""
    if value < 0:
        raise ValueError("base36 values must be non-negative")
    if value == 0:
        return "0"

    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def ensure_unique_value(candidate: str, existing: set[str], fallback_prefix: str) -> str:
    """
    Return candidate, or candidate-1, candidate-2, ... if already taken.

    The chosen value is added to ``existing``.
    """
    base = candidate if candidate and candidate.strip() else f"{fallback_prefix}-{len(existing) + 1}"
    if base not in existing:
        existing.add(base)
        return base

    counter = 1
    value = f"{base}-{counter}"
    while value in existing:
        counter += 1
        value = f"{base}-{counter}"
    existing.add(value)
    return value
