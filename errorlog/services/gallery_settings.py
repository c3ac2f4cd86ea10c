from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator
from typing import Any

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errorlog.core.errors import PersistenceError
from errorlog.models.gallery_setting import GallerySetting


@dataclasses.dataclass(frozen=True)
class Recipient:
    user_name: str
    email: str


@dataclasses.dataclass(frozen=True)
class GallerySettings:
    """Notification settings of one gallery."""

    gallery_id: int
    send_email_on_error: bool = False
    email_from_address: str = ""
    email_from_name: str = ""
    smtp_server: str = ""
    smtp_server_port: str = ""
    send_email_using_ssl: bool = False
    users_to_notify: tuple[Recipient, ...] = ()


class GallerySettingsCollection:
    """Settings of every gallery, iterated in gallery id order."""

    def __init__(self, items: Iterable[GallerySettings] = ()) -> None:
        ordered = sorted(items, key=lambda s: s.gallery_id)
        self._by_id: dict[int, GallerySettings] = {s.gallery_id: s for s in ordered}

    def find_by_gallery_id(self, gallery_id: int) -> GallerySettings | None:
        return self._by_id.get(gallery_id)

    def __iter__(self) -> Iterator[GallerySettings]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)


def recipients_from_json(raw: Any) -> tuple[Recipient, ...]:
    if not isinstance(raw, list):
        return ()
    out: list[Recipient] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        user_name = item.get("user_name")
        email = item.get("email")
        if isinstance(user_name, str) and user_name:
            out.append(Recipient(user_name=user_name, email=str(email or "")))
    return tuple(out)


def recipients_to_json(recipients: Iterable[Recipient]) -> list[dict[str, str]]:
    return [{"user_name": r.user_name, "email": r.email} for r in recipients]


def settings_from_row(row: GallerySetting) -> GallerySettings:
    return GallerySettings(
        gallery_id=row.gallery_id,
        send_email_on_error=bool(row.send_email_on_error),
        email_from_address=row.email_from_address or "",
        email_from_name=row.email_from_name or "",
        smtp_server=row.smtp_server or "",
        smtp_server_port=row.smtp_server_port or "",
        send_email_using_ssl=bool(row.send_email_using_ssl),
        users_to_notify=recipients_from_json(row.users_to_notify),
    )


async def load_gallery_settings(session: AsyncSession) -> GallerySettingsCollection:
    try:
        rows = (
            (await session.execute(sa.select(GallerySetting))).scalars().all()
        )
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to load gallery settings") from e
    return GallerySettingsCollection(settings_from_row(r) for r in rows)


async def save_gallery_settings(
    session: AsyncSession, settings: GallerySettings
) -> GallerySettings:
    """Insert or replace the settings row of `settings.gallery_id`."""

    try:
        row = await session.get(GallerySetting, settings.gallery_id)
        if row is None:
            row = GallerySetting(gallery_id=settings.gallery_id)
            session.add(row)
        row.send_email_on_error = settings.send_email_on_error
        row.email_from_address = settings.email_from_address
        row.email_from_name = settings.email_from_name
        row.smtp_server = settings.smtp_server
        row.smtp_server_port = settings.smtp_server_port
        row.send_email_using_ssl = settings.send_email_using_ssl
        row.users_to_notify = recipients_to_json(settings.users_to_notify)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceError(
            f"Failed to save settings for gallery {settings.gallery_id}"
        ) from e
    return settings_from_row(row)
