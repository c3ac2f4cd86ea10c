from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from errorlog.api.deps import require_admin
from errorlog.db.session import get_db
from errorlog.services.gallery_settings import (
    GallerySettings,
    Recipient,
    load_gallery_settings,
    save_gallery_settings,
)


router = APIRouter(
    prefix="/v1/galleries",
    tags=["galleries"],
    dependencies=[Depends(require_admin)],
)


class RecipientModel(BaseModel):
    user_name: str = Field(min_length=1)
    # Stored as given; invalid addresses are skipped at send time.
    email: str = ""


class ErrorSettingsRequest(BaseModel):
    send_email_on_error: bool = False
    email_from_address: str = ""
    email_from_name: str = ""
    smtp_server: str = ""
    smtp_server_port: str = ""
    send_email_using_ssl: bool = False
    users_to_notify: list[RecipientModel] = Field(default_factory=list)


class ErrorSettingsResponse(ErrorSettingsRequest):
    gallery_id: int


def _to_response(settings: GallerySettings) -> ErrorSettingsResponse:
    return ErrorSettingsResponse(
        gallery_id=settings.gallery_id,
        send_email_on_error=settings.send_email_on_error,
        email_from_address=settings.email_from_address,
        email_from_name=settings.email_from_name,
        smtp_server=settings.smtp_server,
        smtp_server_port=settings.smtp_server_port,
        send_email_using_ssl=settings.send_email_using_ssl,
        users_to_notify=[
            RecipientModel(user_name=r.user_name, email=r.email)
            for r in settings.users_to_notify
        ],
    )


@router.get("/{gallery_id}/error-settings", response_model=ErrorSettingsResponse)
async def get_error_settings(
    gallery_id: int,
    db: AsyncSession = Depends(get_db),
) -> ErrorSettingsResponse:
    collection = await load_gallery_settings(db)
    # Galleries without a row get the defaults (notification off).
    settings = collection.find_by_gallery_id(gallery_id) or GallerySettings(
        gallery_id=gallery_id
    )
    return _to_response(settings)


@router.put("/{gallery_id}/error-settings", response_model=ErrorSettingsResponse)
async def put_error_settings(
    gallery_id: int,
    payload: ErrorSettingsRequest,
    db: AsyncSession = Depends(get_db),
) -> ErrorSettingsResponse:
    saved = await save_gallery_settings(
        db,
        GallerySettings(
            gallery_id=gallery_id,
            send_email_on_error=payload.send_email_on_error,
            email_from_address=payload.email_from_address.strip(),
            email_from_name=payload.email_from_name.strip(),
            smtp_server=payload.smtp_server.strip(),
            smtp_server_port=payload.smtp_server_port.strip(),
            send_email_using_ssl=payload.send_email_using_ssl,
            users_to_notify=tuple(
                Recipient(user_name=u.user_name, email=u.email.strip())
                for u in payload.users_to_notify
            ),
        ),
    )
    return _to_response(saved)
