"""DriveConfig: settings for a Drive instance."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields

_DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///stowage.db"


@dataclass
class DriveConfig:
    """Configuration for a drive instance."""

    database_url: str = _DEFAULT_DATABASE_URL
    """SQLAlchemy async URL used when no engine or session factory is given."""

    signed_url_ttl: int = 3600
    """Lifetime in seconds of mediated retrieval URLs."""

    upload_url_ttl: int = 900
    """Lifetime in seconds of presigned upload URLs."""

    purge_batch_size: int = 500
    """Files per blob-removal batch during permanent delete and empty trash."""

    recent_limit: int = 20
    """Number of files returned by the ``recent`` listing."""

    echo: bool = False
    """Echo SQL when the drive builds its own engine."""

    def __post_init__(self) -> None:
        for name in ("signed_url_ttl", "upload_url_ttl", "purge_batch_size", "recent_limit"):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

    @classmethod
    def from_env(cls, prefix: str = "STOWAGE_") -> DriveConfig:
        """Build a config from ``{prefix}{FIELD}`` environment variables."""
        kwargs: dict[str, object] = {}
        for f in fields(cls):
            raw = os.environ.get(prefix + f.name.upper())
            if raw is None:
                continue
            if f.name == "echo":
                kwargs[f.name] = raw.strip().lower() in ("1", "true", "yes", "on")
            elif f.name == "database_url":
                kwargs[f.name] = raw
            else:
                kwargs[f.name] = int(raw)
        return cls(**kwargs)  # type: ignore[arg-type]
