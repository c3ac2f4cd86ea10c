from __future__ import annotations

import logging

from errorlog.core.errors import InvalidInputError
from errorlog.services.store import ErrorStore


logger = logging.getLogger(__name__)


class RetentionPolicy:
    """Keeps the error log at or below a maximum number of records."""

    def __init__(self, store: ErrorStore) -> None:
        self._store = store

    async def trim(self, max_items: int) -> int:
        """Delete the oldest records until at most `max_items` remain.

        `max_items == 0` disables trimming. All deletions of one call commit
        together or not at all. Returns the number of records deleted.
        """

        if max_items < 0:
            raise InvalidInputError(
                f"max_items must be >= 0 (0 disables trimming), got {max_items}"
            )
        if max_items == 0:
            return 0

        errors = await self._store.get_all()
        num_errors = len(errors)
        if num_errors <= max_items:
            return 0

        num_deleted = 0
        async with self._store.transaction():
            while num_errors > max_items:
                oldest = errors[num_errors - 1]
                await self._store.delete(int(oldest.id))  # type: ignore[arg-type]
                num_errors -= 1
                num_deleted += 1

        logger.info(
            "Trimmed %d error records (cap=%d, remaining=%d)",
            num_deleted,
            max_items,
            num_errors,
        )
        return num_deleted
