from __future__ import annotations

import datetime as dt

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from errorlog.db.base import Base, utcnow


class GallerySetting(Base):
    """E-mail notification settings of one gallery (tenant)."""

    __tablename__ = "gallery_settings"

    gallery_id: Mapped[int] = mapped_column(
        sa.Integer, primary_key=True, autoincrement=False
    )

    send_email_on_error: Mapped[bool] = mapped_column(
        sa.Boolean,
        nullable=False,
        default=False,
        server_default=sa.text("FALSE"),
    )
    email_from_address: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    email_from_name: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    smtp_server: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    # Kept as text: blank or unparsable values fall back to the default port.
    smtp_server_port: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    send_email_using_ssl: Mapped[bool] = mapped_column(
        sa.Boolean,
        nullable=False,
        default=False,
        server_default=sa.text("FALSE"),
    )

    # Ordered list of {"user_name": ..., "email": ...}.
    users_to_notify: Mapped[list[dict[str, str]] | None] = mapped_column(
        sa.JSON, nullable=True
    )

    updated_at: Mapped[dt.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
