from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator, Iterable, Iterator, Sequence
from typing import Any, overload

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errorlog.core.errors import InvalidInputError, PersistenceError
from errorlog.db.base import as_utc
from errorlog.models.app_error import AppError
from errorlog.services import pairlist
from errorlog.services.capture import (
    SYSTEM_WIDE_GALLERY_ID,
    ErrorRecord,
    ExceptionFrame,
)


logger = logging.getLogger(__name__)


def _to_row(record: ErrorRecord) -> AppError:
    return AppError(
        gallery_id=record.gallery_id,
        timestamp=as_utc(record.timestamp),
        exception_type=record.primary.exception_type,
        message=record.primary.message,
        source=record.primary.source,
        target_site=record.primary.target_site,
        stack_trace=record.primary.stack_trace,
        exception_data=pairlist.serialize(record.primary.data),
        inner_ex_type=record.inner.exception_type,
        inner_ex_message=record.inner.message,
        inner_ex_source=record.inner.source,
        inner_ex_target_site=record.inner.target_site,
        inner_ex_stack_trace=record.inner.stack_trace,
        inner_ex_data=pairlist.serialize(record.inner.data),
        url=record.url,
        form_variables=pairlist.serialize(record.form_variables),
        cookies=pairlist.serialize(record.cookies),
        session_variables=pairlist.serialize(record.session_variables),
        server_variables=pairlist.serialize(record.server_variables),
    )


def _from_row(row: AppError) -> ErrorRecord:
    return ErrorRecord(
        id=row.id,
        gallery_id=row.gallery_id,
        timestamp=as_utc(row.timestamp),
        primary=ExceptionFrame(
            exception_type=row.exception_type,
            message=row.message,
            source=row.source,
            target_site=row.target_site,
            stack_trace=row.stack_trace,
            data=tuple(pairlist.deserialize(row.exception_data)),
        ),
        inner=ExceptionFrame(
            exception_type=row.inner_ex_type,
            message=row.inner_ex_message,
            source=row.inner_ex_source,
            target_site=row.inner_ex_target_site,
            stack_trace=row.inner_ex_stack_trace,
            data=tuple(pairlist.deserialize(row.inner_ex_data)),
        ),
        url=row.url or "",
        form_variables=tuple(pairlist.deserialize(row.form_variables)),
        cookies=tuple(pairlist.deserialize(row.cookies)),
        session_variables=tuple(pairlist.deserialize(row.session_variables)),
        server_variables=tuple(pairlist.deserialize(row.server_variables)),
    )


class ErrorLog(Sequence[ErrorRecord]):
    """Read-only list of error records, most recent first."""

    def __init__(self, records: Iterable[ErrorRecord] = ()) -> None:
        self._items: tuple[ErrorRecord, ...] = tuple(records)

    @classmethod
    def newest_first(cls, records: Iterable[ErrorRecord]) -> ErrorLog:
        # sorted() is stable with reverse=True: equal timestamps keep their order.
        return cls(sorted(records, key=lambda r: r.timestamp, reverse=True))

    @overload
    def __getitem__(self, index: int) -> ErrorRecord: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[ErrorRecord]: ...

    def __getitem__(self, index: Any) -> Any:
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ErrorRecord]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"ErrorLog({len(self._items)} records)"

    def find_by_id(self, app_error_id: int) -> ErrorRecord | None:
        return next((r for r in self._items if r.id == app_error_id), None)

    def find_all_for_gallery(
        self, gallery_id: int, include_system_wide: bool
    ) -> ErrorLog:
        if include_system_wide:
            return ErrorLog(
                r
                for r in self._items
                if r.gallery_id in (gallery_id, SYSTEM_WIDE_GALLERY_ID)
            )
        return ErrorLog(r for r in self._items if r.gallery_id == gallery_id)


class ErrorStore:
    """Error-log persistence over an AsyncSession.

    Writes commit immediately unless they run inside `transaction()`. Any
    database failure surfaces as PersistenceError.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._in_transaction = False

    @property
    def session(self) -> AsyncSession:
        return self._session

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """All-or-nothing scope: commit on exit, roll back on any error."""

        if self._in_transaction:
            raise InvalidInputError("Nested error log transactions are not supported")

        self._in_transaction = True
        try:
            yield
            try:
                await self._session.commit()
            except SQLAlchemyError as e:
                raise PersistenceError("Failed to commit error log changes") from e
        except BaseException:
            await self._session.rollback()
            raise
        finally:
            self._in_transaction = False

    async def _select(self, stmt: sa.Select[Any]) -> list[ErrorRecord]:
        try:
            rows = (await self._session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to read the error log") from e
        return [_from_row(row) for row in rows]

    async def _write(self, stmt: sa.Executable, *, what: str) -> int:
        try:
            result = await self._session.execute(stmt)
            if not self._in_transaction:
                await self._session.commit()
        except SQLAlchemyError as e:
            if not self._in_transaction:
                await self._session.rollback()
            raise PersistenceError(f"Failed to {what}") from e
        return int(getattr(result, "rowcount", 0) or 0)

    async def get_all(self) -> ErrorLog:
        # Read in insertion order so the stable sort keeps ties in that order.
        records = await self._select(sa.select(AppError).order_by(AppError.id.asc()))
        return ErrorLog.newest_first(records)

    async def find_by_id(self, app_error_id: int) -> ErrorRecord | None:
        records = await self._select(
            sa.select(AppError).where(AppError.id == app_error_id)
        )
        return records[0] if records else None

    async def find_all_for_gallery(
        self, gallery_id: int, include_system_wide: bool
    ) -> ErrorLog:
        if include_system_wide:
            cond = sa.or_(
                AppError.gallery_id == gallery_id,
                AppError.gallery_id == SYSTEM_WIDE_GALLERY_ID,
            )
        else:
            cond = AppError.gallery_id == gallery_id
        records = await self._select(
            sa.select(AppError).where(cond).order_by(AppError.id.asc())
        )
        return ErrorLog.newest_first(records)

    async def save(self, record: ErrorRecord) -> int:
        """Insert `record` and assign its id."""

        if record.id is not None:
            raise InvalidInputError(
                f"Cannot save a previously saved error record (id={record.id})"
            )

        row = _to_row(record)
        try:
            self._session.add(row)
            await self._session.flush()
            new_id = int(row.id)
            if not self._in_transaction:
                await self._session.commit()
        except SQLAlchemyError as e:
            if not self._in_transaction:
                await self._session.rollback()
            raise PersistenceError("Failed to save error record") from e

        record.assign_id(new_id)
        logger.debug("Saved error record %s (gallery %s)", new_id, record.gallery_id)
        return new_id

    async def delete(self, app_error_id: int) -> None:
        # Deleting a missing id is not an error.
        await self._write(
            sa.delete(AppError).where(AppError.id == app_error_id),
            what=f"delete error record {app_error_id}",
        )

    async def clear_log(self, gallery_id: int) -> int:
        """Delete the gallery's errors together with all system-wide errors."""

        deleted = await self._write(
            sa.delete(AppError).where(
                sa.or_(
                    AppError.gallery_id == gallery_id,
                    AppError.gallery_id == SYSTEM_WIDE_GALLERY_ID,
                )
            ),
            what=f"clear error log for gallery {gallery_id}",
        )
        logger.info("Cleared %d error records for gallery %s", deleted, gallery_id)
        return deleted
