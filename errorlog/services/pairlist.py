"""Text encoding of ordered (key, value) pair lists.

The encoded form is a JSON array of two-element string arrays, so duplicate
keys and ordering survive a round trip (a JSON object would lose both).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable


logger = logging.getLogger(__name__)

Pair = tuple[str, str]


def serialize(pairs: Iterable[Pair] | None) -> str:
    if pairs is None:
        return ""
    rows = [[str(k), str(v)] for k, v in pairs]
    if not rows:
        return ""
    return json.dumps(rows, ensure_ascii=False, separators=(",", ":"))


def deserialize(text: str | None) -> list[Pair]:
    """Decode text produced by `serialize`.

    Malformed input yields an empty list so report generation never fails on
    a damaged row.
    """

    if not text:
        return []

    try:
        raw = json.loads(text)
    except ValueError:
        logger.warning("Discarding malformed pair list (%d chars)", len(text))
        return []

    if not isinstance(raw, list):
        logger.warning("Discarding pair list that is not a JSON array")
        return []

    out: list[Pair] = []
    for row in raw:
        if (
            not isinstance(row, list)
            or len(row) != 2
            or not all(isinstance(x, str) for x in row)
        ):
            logger.warning("Discarding pair list with a malformed row")
            return []
        out.append((row[0], row[1]))
    return out
