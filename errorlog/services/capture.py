"""Build error-log records from raised exceptions.

A record holds the outermost exception (`primary`), one merged frame for the
whole inner-exception chain (`inner`) and a snapshot of the request that was
being served. Everything is copied at capture time; later changes to the
exception or the request do not reach the record.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import traceback
from collections.abc import Iterable, Mapping
from types import FrameType

from errorlog.core.errors import InvalidInputError
from errorlog.db.base import as_utc, utcnow


# Gallery id of errors that do not belong to any gallery.
SYSTEM_WIDE_GALLERY_ID = -2147483648

MISSING_DATA_TEXT = "<Missing data>"

# Joins the 2nd, 3rd, ... inner exception onto the merged inner frame.
INNER_EX_DELIMITER = ";\n Inner ex #{n}: "
INNER_EX_DATA_KEY = "Inner ex #{n} data: {key}"

USER_AGENT_SERVER_VARIABLE = "HTTP_USER_AGENT"

Pair = tuple[str, str]
Pairs = tuple[Pair, ...]


def _freeze_pairs(pairs: Iterable[tuple[object, object]] | None) -> Pairs:
    if not pairs:
        return ()
    return tuple((str(k), str(v)) for k, v in pairs)


def _or_missing(value: str | None) -> str:
    return value if value else MISSING_DATA_TEXT


@dataclasses.dataclass(frozen=True)
class RequestContext:
    """Request state at the moment an error was raised."""

    url: str = ""
    form_variables: Pairs = ()
    cookies: Pairs = ()
    session_variables: Pairs = ()
    server_variables: Pairs = ()


@dataclasses.dataclass(frozen=True)
class ExceptionFrame:
    exception_type: str = ""
    message: str = ""
    source: str = ""
    target_site: str = ""
    stack_trace: str = ""
    data: Pairs = ()

    def merge(self, other: ExceptionFrame, n: int) -> ExceptionFrame:
        """Append `other` as inner exception number `n` of this frame."""

        sep = INNER_EX_DELIMITER.format(n=n)
        extra = tuple(
            (INNER_EX_DATA_KEY.format(n=n, key=k), v) for k, v in other.data
        )
        return ExceptionFrame(
            exception_type=f"{self.exception_type}{sep}{other.exception_type}",
            message=f"{self.message}{sep}{other.message}",
            source=f"{self.source}{sep}{other.source}",
            target_site=f"{self.target_site}{sep}{other.target_site}",
            stack_trace=f"{self.stack_trace}{sep}{other.stack_trace}",
            data=self.data + extra,
        )


@dataclasses.dataclass(slots=True)
class ErrorRecord:
    """One captured failure.

    `id` stays None until the record is saved. Pair lists are tuples; the only
    change allowed after saving is `add_diagnostic`.
    """

    gallery_id: int
    timestamp: dt.datetime
    primary: ExceptionFrame
    inner: ExceptionFrame = dataclasses.field(default_factory=ExceptionFrame)
    url: str = ""
    form_variables: Pairs = ()
    cookies: Pairs = ()
    session_variables: Pairs = ()
    server_variables: Pairs = ()
    id: int | None = None

    @property
    def is_system_wide(self) -> bool:
        return self.gallery_id == SYSTEM_WIDE_GALLERY_ID

    @property
    def display_url(self) -> str:
        return _or_missing(self.url)

    @property
    def user_agent(self) -> str:
        target = USER_AGENT_SERVER_VARIABLE.casefold()
        for key, value in self.server_variables:
            if key.casefold() == target:
                return value
        return MISSING_DATA_TEXT

    def assign_id(self, value: int) -> None:
        if self.id is not None:
            raise InvalidInputError(
                f"Error record already has id {self.id}; cannot assign {value}"
            )
        self.id = value

    def add_diagnostic(self, key: str, value: str) -> None:
        self.primary = dataclasses.replace(
            self.primary, data=self.primary.data + ((key, value),)
        )


def add_exception_data(exc: BaseException, key: object, value: object) -> None:
    """Attach a key/value pair to `exc`; it ends up in the record's data."""

    data = getattr(exc, "data", None)
    if not isinstance(data, dict):
        data = {}
        exc.data = data  # type: ignore[attr-defined]
    data[key] = value


def exception_type_name(exc: BaseException) -> str:
    cls = type(exc)
    module = cls.__module__
    if not module or module == "builtins":
        return cls.__qualname__
    return f"{module}.{cls.__qualname__}"


def _innermost_frame(exc: BaseException) -> FrameType | None:
    tb = exc.__traceback__
    if tb is None:
        return None
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame


def _data_pairs(exc: BaseException) -> Pairs:
    pairs: list[Pair] = []
    data = getattr(exc, "data", None)
    if isinstance(data, Mapping):
        pairs.extend((str(k), str(v)) for k, v in data.items())
    notes = getattr(exc, "__notes__", None) or ()
    for i, note in enumerate(notes, start=1):
        pairs.append((f"Note #{i}", str(note)))
    return tuple(pairs)


def frame_from_exception(exc: BaseException) -> ExceptionFrame:
    frame = _innermost_frame(exc)
    source = None
    target_site = None
    if frame is not None:
        source = frame.f_globals.get("__name__")
        code = frame.f_code
        func = getattr(code, "co_qualname", code.co_name)
        target_site = f"{source}.{func}" if source else func

    stack_trace = "".join(traceback.format_tb(exc.__traceback__)).rstrip("\n")

    return ExceptionFrame(
        exception_type=exception_type_name(exc),
        message=_or_missing(str(exc)),
        source=_or_missing(source),
        target_site=_or_missing(target_site),
        stack_trace=_or_missing(stack_trace),
        data=_data_pairs(exc),
    )


def inner_exception(exc: BaseException) -> BaseException | None:
    if exc.__cause__ is not None:
        return exc.__cause__
    if exc.__suppress_context__:
        return None
    return exc.__context__


def merge_inner_chain(exc: BaseException) -> ExceptionFrame:
    """Fold every inner exception of `exc` into one frame.

    The first inner exception fills the frame; later ones are appended with
    `INNER_EX_DELIMITER`. An exception chain that loops back is cut at the
    first repeat.
    """

    seen = {id(exc)}
    merged = ExceptionFrame()
    n = 0
    inner = inner_exception(exc)
    while inner is not None and id(inner) not in seen:
        seen.add(id(inner))
        n += 1
        frame = frame_from_exception(inner)
        merged = frame if n == 1 else merged.merge(frame, n)
        inner = inner_exception(inner)
    return merged


def capture(
    exc: BaseException | None,
    gallery_id: int = SYSTEM_WIDE_GALLERY_ID,
    context: RequestContext | None = None,
    *,
    now: dt.datetime | None = None,
) -> ErrorRecord:
    if exc is None:
        raise InvalidInputError("An exception is required to capture an error")
    if not isinstance(exc, BaseException):
        raise InvalidInputError(
            f"Expected an exception instance, got {type(exc).__name__}"
        )

    ctx = context or RequestContext()
    return ErrorRecord(
        gallery_id=int(gallery_id),
        timestamp=as_utc(now) if now else utcnow(),
        primary=frame_from_exception(exc),
        inner=merge_inner_chain(exc),
        url=ctx.url or "",
        form_variables=_freeze_pairs(ctx.form_variables),
        cookies=_freeze_pairs(ctx.cookies),
        session_variables=_freeze_pairs(ctx.session_variables),
        server_variables=_freeze_pairs(ctx.server_variables),
    )
