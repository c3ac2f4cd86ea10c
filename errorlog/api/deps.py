from __future__ import annotations

import secrets

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from errorlog.core.errors import APIError
from errorlog.core.settings import Settings, get_settings
from errorlog.db.session import get_db
from errorlog.services.error_service import ErrorService


def require_admin(
    x_admin_key: str | None = Header(default=None, alias="X-Admin-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.admin_api_key:
        raise APIError(
            code="AUTH_FORBIDDEN",
            message="Admin API is disabled",
            status_code=403,
        )
    if not x_admin_key or not secrets.compare_digest(
        x_admin_key.encode("utf-8"), settings.admin_api_key.encode("utf-8")
    ):
        raise APIError(
            code="AUTH_FORBIDDEN",
            message="Admin permission required",
            status_code=403,
        )


def get_error_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ErrorService:
    return ErrorService(db, settings=settings)
