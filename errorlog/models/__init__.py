"""SQLAlchemy ORM models.

Importing this module should register all tables on Base.metadata.
"""

from __future__ import annotations

from errorlog.models.app_error import AppError
from errorlog.models.gallery_setting import GallerySetting

__all__ = [
    "AppError",
    "GallerySetting",
]
