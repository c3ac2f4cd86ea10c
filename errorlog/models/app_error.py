from __future__ import annotations

import datetime as dt

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from errorlog.db.base import Base, utcnow


class AppError(Base):
    """One row of the error log.

    Pair-list columns hold text produced by `errorlog.services.pairlist.serialize`.
    """

    __tablename__ = "app_errors"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    gallery_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    timestamp: Mapped[dt.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow
    )

    exception_type: Mapped[str] = mapped_column(sa.Text, nullable=False)
    message: Mapped[str] = mapped_column(sa.Text, nullable=False)
    source: Mapped[str] = mapped_column(sa.Text, nullable=False)
    target_site: Mapped[str] = mapped_column(sa.Text, nullable=False)
    stack_trace: Mapped[str] = mapped_column(sa.Text, nullable=False)
    exception_data: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )

    inner_ex_type: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )
    inner_ex_message: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )
    inner_ex_source: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )
    inner_ex_target_site: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )
    inner_ex_stack_trace: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )
    inner_ex_data: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )

    url: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )
    form_variables: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )
    cookies: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )
    session_variables: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )
    server_variables: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default="", server_default=""
    )

    __table_args__ = (
        sa.Index("ix_app_errors_gallery_timestamp", "gallery_id", "timestamp"),
    )
