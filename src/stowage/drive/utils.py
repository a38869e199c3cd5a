"""Name validation, copy naming, and storage key helpers."""

from __future__ import annotations

import time
import uuid

from .exceptions import ValidationError

MAX_NAME_LENGTH = 255


def validate_name(name: str | None, kind: str = "Name") -> str:
    """Return *name* stripped, raising ``ValidationError`` if it is unusable."""
    if name is None or not name.strip():
        raise ValidationError(f"{kind} cannot be empty")
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"{kind} too long (max {MAX_NAME_LENGTH} characters)")
    if "\0" in name:
        raise ValidationError(f"{kind} contains a null byte")
    return name


def copy_name(name: str) -> str:
    """Return the display name for a duplicate of *name*.

    ``report.pdf`` becomes ``report (Copy).pdf``; names without an
    extension, or dotfiles such as ``.env``, get `` (Copy)`` appended.
    """
    base, dot, ext = name.rpartition(".")
    if not dot or not base:
        return f"{name} (Copy)"
    return f"{base} (Copy).{ext}"


def make_storage_key(owner_id: str, name: str) -> str:
    """Build a fresh blob key ``{owner_id}/{epoch_ms}_{shortid}_{name}``."""
    safe = name.replace("/", "_").replace("\\", "_")
    return f"{owner_id}/{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}_{safe}"


def normalize_email(email: str | None) -> str:
    """Strip and lower-case *email*."""
    return (email or "").strip().lower()
