from __future__ import annotations

import dataclasses
import datetime as dt

import pytest

from errorlog.core.errors import InvalidInputError
from errorlog.services.capture import (
    MISSING_DATA_TEXT,
    SYSTEM_WIDE_GALLERY_ID,
    RequestContext,
    add_exception_data,
    capture,
    exception_type_name,
)


class GalleryFailure(Exception):
    pass


def _raise_value_error() -> None:
    raise ValueError("bad input")


def _raised(exc: BaseException) -> BaseException:
    try:
        raise exc
    except BaseException as e:
        return e


def _chained() -> BaseException:
    # C (innermost) <- B <- A (outermost)
    try:
        try:
            try:
                raise KeyError("c-key")
            except KeyError as c:
                raise OSError("b-disk") from c
        except OSError as b:
            raise GalleryFailure("a-top") from b
    except GalleryFailure as a:
        return a


def test_capture_fills_primary_frame_from_raised_exception() -> None:
    try:
        _raise_value_error()
    except ValueError as e:
        exc = e

    record = capture(exc, 7)

    assert record.id is None
    assert record.gallery_id == 7
    assert record.timestamp.tzinfo is not None
    assert record.primary.exception_type == "ValueError"
    assert record.primary.message == "bad input"
    assert record.primary.source == __name__
    assert record.primary.target_site == f"{__name__}._raise_value_error"
    assert "_raise_value_error" in record.primary.stack_trace
    assert record.inner.exception_type == ""
    assert record.inner.data == ()


def test_capture_uses_qualified_names_for_non_builtin_types() -> None:
    assert exception_type_name(GalleryFailure()) == f"{__name__}.GalleryFailure"
    assert exception_type_name(KeyError()) == "KeyError"


def test_capture_without_traceback_uses_missing_data_text() -> None:
    record = capture(RuntimeError(""), 3)

    assert record.primary.message == MISSING_DATA_TEXT
    assert record.primary.source == MISSING_DATA_TEXT
    assert record.primary.target_site == MISSING_DATA_TEXT
    assert record.primary.stack_trace == MISSING_DATA_TEXT


def test_capture_defaults_to_system_wide_gallery() -> None:
    record = capture(_raised(RuntimeError("x")))
    assert record.gallery_id == SYSTEM_WIDE_GALLERY_ID
    assert record.is_system_wide


def test_capture_flattens_inner_exception_chain() -> None:
    exc = _chained()
    c = exc.__cause__.__cause__  # type: ignore[union-attr]
    add_exception_data(c, "k", "v")

    record = capture(exc, 1)

    assert record.primary.exception_type == f"{__name__}.GalleryFailure"
    assert record.primary.message == "a-top"
    assert record.inner.exception_type == "OSError;\n Inner ex #2: KeyError"
    assert record.inner.message == "b-disk;\n Inner ex #2: 'c-key'"
    assert record.inner.source.count(";\n Inner ex #2: ") == 1
    assert record.inner.data == (("Inner ex #2 data: k", "v"),)


def test_capture_single_inner_exception_is_copied_as_is() -> None:
    try:
        try:
            raise KeyError("inner")
        except KeyError:
            raise RuntimeError("outer")
    except RuntimeError as e:
        exc = e

    record = capture(exc, 1)

    assert record.inner.exception_type == "KeyError"
    assert record.inner.message == "'inner'"
    assert "Inner ex" not in record.inner.stack_trace


def test_capture_skips_suppressed_context() -> None:
    try:
        try:
            raise KeyError("hidden")
        except KeyError:
            raise RuntimeError("outer") from None
    except RuntimeError as e:
        exc = e

    record = capture(exc, 1)
    assert record.inner.exception_type == ""


def test_capture_stops_on_cyclic_chain() -> None:
    a = ValueError("a")
    b = KeyError("b")
    a.__cause__ = b
    b.__cause__ = a

    record = capture(a, 1)
    assert record.inner.exception_type == "KeyError"


def test_capture_copies_exception_data_and_notes() -> None:
    exc = _raised(RuntimeError("with data"))
    add_exception_data(exc, "album", 42)
    exc.add_note("first note")

    record = capture(exc, 1)

    assert record.primary.data == (("album", "42"), ("Note #1", "first note"))


def test_capture_snapshots_request_context() -> None:
    form = [("title", "Beach")]
    ctx = RequestContext(
        url="https://example.test/gallery/album?id=3",
        form_variables=form,  # type: ignore[arg-type]
        cookies=(("sid", "abc"),),
        server_variables=(("http_user_agent", "Mozilla/5.0"), ("REMOTE_ADDR", "10.0.0.1")),
    )

    record = capture(_raised(RuntimeError("x")), 5, ctx)
    form.append(("later", "change"))

    assert record.url == "https://example.test/gallery/album?id=3"
    assert record.form_variables == (("title", "Beach"),)
    assert record.cookies == (("sid", "abc"),)
    assert record.session_variables == ()
    assert record.user_agent == "Mozilla/5.0"


def test_capture_without_context_shows_missing_url_and_user_agent() -> None:
    record = capture(_raised(RuntimeError("x")), 5)

    assert record.url == ""
    assert record.display_url == MISSING_DATA_TEXT
    assert record.user_agent == MISSING_DATA_TEXT


def test_capture_uses_given_timestamp() -> None:
    now = dt.datetime(2026, 1, 1, 10, 0, tzinfo=dt.timezone.utc)
    record = capture(_raised(RuntimeError("x")), 5, now=now)
    assert record.timestamp == now


def test_capture_normalizes_timestamp_to_utc() -> None:
    local = dt.datetime(2026, 1, 1, 12, 0, tzinfo=dt.timezone(dt.timedelta(hours=2)))
    record = capture(_raised(RuntimeError("x")), 5, now=local)

    assert record.timestamp == dt.datetime(2026, 1, 1, 10, 0, tzinfo=dt.timezone.utc)
    assert record.timestamp.tzinfo == dt.timezone.utc


def test_capture_rejects_missing_exception() -> None:
    with pytest.raises(InvalidInputError):
        capture(None, 1)
    with pytest.raises(InvalidInputError):
        capture("not an exception", 1)  # type: ignore[arg-type]


def test_record_id_can_only_be_assigned_once() -> None:
    record = capture(_raised(RuntimeError("x")), 1)
    record.assign_id(10)
    with pytest.raises(InvalidInputError):
        record.assign_id(11)
    assert record.id == 10


def test_add_diagnostic_appends_to_primary_data() -> None:
    record = capture(_raised(RuntimeError("x")), 1)
    before = record.primary

    record.add_diagnostic("Cannot Send Email", "boom")

    assert record.primary.data[-1] == ("Cannot Send Email", "boom")
    assert before.data == ()
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.primary.message = "changed"  # type: ignore[misc]
