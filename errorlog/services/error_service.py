from __future__ import annotations

import logging
import traceback

from sqlalchemy.ext.asyncio import AsyncSession

from errorlog.core.settings import Settings, get_settings
from errorlog.services.capture import (
    SYSTEM_WIDE_GALLERY_ID,
    ErrorRecord,
    RequestContext,
    add_exception_data,
    capture,
    exception_type_name,
)
from errorlog.services.gallery_settings import (
    GallerySettingsCollection,
    load_gallery_settings,
)
from errorlog.services.notify import INFO_MESSAGE_PREFIX, NotificationDispatcher
from errorlog.services.retention import RetentionPolicy
from errorlog.services.store import ErrorStore


logger = logging.getLogger(__name__)

ERROR_HANDLING_EXCEPTION_KEY = "Error Handling Exception"


class GalleryEvent(Exception):
    """Informational entry written to the error log."""


class ErrorService:
    """Records errors into the log and notifies the configured recipients.

    Holds the session and configuration explicitly; request state reaches
    `capture` only through the `context` argument.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: Settings | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = ErrorStore(session)
        self._retention = RetentionPolicy(self._store)
        self._dispatcher = dispatcher or NotificationDispatcher.from_settings(
            self._settings
        )

    @property
    def store(self) -> ErrorStore:
        return self._store

    @property
    def retention(self) -> RetentionPolicy:
        return self._retention

    async def record_error(
        self,
        exc: BaseException | None,
        *,
        gallery_id: int = SYSTEM_WIDE_GALLERY_ID,
        context: RequestContext | None = None,
        gallery_settings: GallerySettingsCollection | None = None,
        max_items: int | None = None,
    ) -> ErrorRecord:
        """Capture and save `exc`, then trim and notify when asked to.

        Persistence and retention failures propagate; notification never
        raises.
        """

        record = capture(exc, gallery_id, context)
        await self._store.save(record)

        if max_items is not None:
            await self._retention.trim(max_items)

        if gallery_settings is not None:
            self._dispatcher.notify(record, gallery_settings)

        return record

    async def record(
        self,
        exc: BaseException | None,
        *,
        gallery_id: int = SYSTEM_WIDE_GALLERY_ID,
        context: RequestContext | None = None,
        gallery_settings: GallerySettingsCollection | None = None,
        max_items: int | None = None,
    ) -> int:
        rec = await self.record_error(
            exc,
            gallery_id=gallery_id,
            context=context,
            gallery_settings=gallery_settings,
            max_items=max_items,
        )
        return int(rec.id)  # type: ignore[arg-type]

    async def log_event(
        self,
        message: str,
        *,
        gallery_id: int = SYSTEM_WIDE_GALLERY_ID,
        context: RequestContext | None = None,
    ) -> int:
        """Write an informational entry; it is never e-mailed."""

        if not message.casefold().startswith(INFO_MESSAGE_PREFIX.casefold()):
            message = f"{INFO_MESSAGE_PREFIX} {message}"
        return await self.record(
            GalleryEvent(message),
            gallery_id=gallery_id,
            context=context,
            max_items=self._settings.max_number_error_items,
        )

    async def notify_saved(self, app_error_id: int) -> list[str]:
        """Send notifications for a record that is already in the log."""

        record = await self._store.find_by_id(app_error_id)
        if record is None:
            logger.info("Error record %s no longer exists; nothing to send", app_error_id)
            return []
        gallery_settings = await load_gallery_settings(self._store.session)
        return self._dispatcher.notify(record, gallery_settings)

    async def handle_exception(
        self,
        exc: BaseException,
        *,
        gallery_id: int = SYSTEM_WIDE_GALLERY_ID,
        context: RequestContext | None = None,
        notify: bool = True,
    ) -> int | None:
        """Record `exc` using the stored gallery settings and configured cap.

        Never raises. When recording fails, the failure is attached to `exc`
        under ERROR_HANDLING_EXCEPTION_KEY and logged; None is returned.
        """

        try:
            gallery_settings = (
                await load_gallery_settings(self._store.session) if notify else None
            )
            return await self.record(
                exc,
                gallery_id=gallery_id,
                context=context,
                gallery_settings=gallery_settings,
                max_items=self._settings.max_number_error_items,
            )
        except Exception as e:
            data = getattr(exc, "data", None)
            if not (isinstance(data, dict) and ERROR_HANDLING_EXCEPTION_KEY in data):
                add_exception_data(
                    exc,
                    ERROR_HANDLING_EXCEPTION_KEY,
                    "Recording this error failed: "
                    f"{exception_type_name(e)} - {e} Stack trace: "
                    f"{''.join(traceback.format_tb(e.__traceback__))}",
                )
            logger.exception(
                "Failed to record %s in the error log", exception_type_name(exc)
            )
            return None
