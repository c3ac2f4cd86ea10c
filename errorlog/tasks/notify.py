from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Coroutine, TypeVar

from errorlog.db.session import get_sessionmaker
from errorlog.services.error_service import ErrorService
from errorlog.tasks.celery_app import celery_app


logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def _run_coro_sync(coro_factory: Callable[[], Coroutine[Any, Any, _T]]) -> _T:
    """Run an async coroutine from a sync context.

    In Celery eager mode, tasks may be invoked from within an already-running
    event loop (e.g. FastAPI). `asyncio.run()` would crash there, so we fall
    back to executing the coroutine on a one-off thread.
    """

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro_factory())

    with ThreadPoolExecutor(max_workers=1) as ex:
        fut = ex.submit(lambda: asyncio.run(coro_factory()))
        return fut.result()


async def _notify_app_error(app_error_id: int) -> list[str]:
    sessionmaker = get_sessionmaker()
    async with sessionmaker() as session:
        return await ErrorService(session).notify_saved(app_error_id)


@celery_app.task(name="errorlog.tasks.notify.notify_app_error_task")
def notify_app_error_task(app_error_id: int) -> list[str]:
    """E-mail a saved error record to its recipients.

    Notes:
    - In dev/test, Celery runs in eager mode, so `.delay(...)` executes inline.
    - Returns the user names that were sent an e-mail.
    """

    return _run_coro_sync(lambda: _notify_app_error(int(app_error_id)))


def enqueue_notification(app_error_id: int) -> None:
    """Queue notification for a saved record; failures are only logged."""

    try:
        notify_app_error_task.delay(app_error_id)
    except Exception:
        logger.exception("Failed to queue notification for error %s", app_error_id)
