"""HTML rendering of error records for the admin page and e-mail bodies."""

from __future__ import annotations

import dataclasses
import enum
import html
from collections.abc import Callable, Sequence

from errorlog.services.capture import MISSING_DATA_TEXT, ErrorRecord, Pairs


NO_DATA_TEXT = "<none>"
MAX_LINE_LENGTH = 70

EMAIL_BODY_PREFIX = "An error occurred in the gallery application. Details follow."

CSS_STYLES = """
<style type="text/css">
 .err_ns {font-family:Verdana, Arial, Helvetica, sans-serif;font-size:12px;}
 .err_ns .err_h1 { margin: .5em 0 .5em 0;color:#800;font-size: 1.4em;}
 .err_ns .err_h2 { background-color:#cdc9c2;font-size: 1.2em; font-weight: bold;margin:1em 0 0 0;padding:.4em 0 .4em 4px;}
 .err_ns .err_table {width:100%;border:1px solid #cdc9c2;}
 .err_ns .err_table td {vertical-align:top;padding:4px;}
 .err_ns .err_col1 {background-color:#dcd8cf;white-space:nowrap;width:150px;border-bottom:1px solid #fff;}
 .err_ns .err_col2 {border-bottom:1px solid #dcd8cf;}
 .err_ns p { margin: 0 0 0.2em 0; padding: 0.2em 0 0 0; }
</style>
"""


class ErrorItem(enum.Enum):
    APP_ERROR_ID = "app_error_id"
    URL = "url"
    TIMESTAMP = "timestamp"
    EXCEPTION_TYPE = "exception_type"
    MESSAGE = "message"
    SOURCE = "source"
    TARGET_SITE = "target_site"
    STACK_TRACE = "stack_trace"
    EXCEPTION_DATA = "exception_data"
    INNER_EX_TYPE = "inner_ex_type"
    INNER_EX_MESSAGE = "inner_ex_message"
    INNER_EX_SOURCE = "inner_ex_source"
    INNER_EX_TARGET_SITE = "inner_ex_target_site"
    INNER_EX_STACK_TRACE = "inner_ex_stack_trace"
    INNER_EX_DATA = "inner_ex_data"
    GALLERY_ID = "gallery_id"
    HTTP_USER_AGENT = "http_user_agent"
    FORM_VARIABLES = "form_variables"
    COOKIES = "cookies"
    SESSION_VARIABLES = "session_variables"
    SERVER_VARIABLES = "server_variables"


@dataclasses.dataclass(frozen=True)
class _Field:
    label: str
    value: Callable[[ErrorRecord], str | Pairs]


def _id_text(record: ErrorRecord) -> str:
    return "" if record.id is None else str(record.id)


_FIELDS: dict[ErrorItem, _Field] = {
    ErrorItem.APP_ERROR_ID: _Field("App Error ID", _id_text),
    ErrorItem.URL: _Field("URL", lambda r: r.display_url),
    ErrorItem.TIMESTAMP: _Field("Timestamp", lambda r: r.timestamp.isoformat()),
    ErrorItem.EXCEPTION_TYPE: _Field(
        "Exception Type", lambda r: r.primary.exception_type
    ),
    ErrorItem.MESSAGE: _Field("Message", lambda r: r.primary.message),
    ErrorItem.SOURCE: _Field("Source", lambda r: r.primary.source),
    ErrorItem.TARGET_SITE: _Field("Target Site", lambda r: r.primary.target_site),
    ErrorItem.STACK_TRACE: _Field("Stack Trace", lambda r: r.primary.stack_trace),
    ErrorItem.EXCEPTION_DATA: _Field("Exception Data", lambda r: r.primary.data),
    ErrorItem.INNER_EX_TYPE: _Field(
        "Inner Ex Type", lambda r: r.inner.exception_type
    ),
    ErrorItem.INNER_EX_MESSAGE: _Field("Inner Ex Message", lambda r: r.inner.message),
    ErrorItem.INNER_EX_SOURCE: _Field("Inner Ex Source", lambda r: r.inner.source),
    ErrorItem.INNER_EX_TARGET_SITE: _Field(
        "Inner Ex Target Site", lambda r: r.inner.target_site
    ),
    ErrorItem.INNER_EX_STACK_TRACE: _Field(
        "Inner Ex Stack Trace", lambda r: r.inner.stack_trace
    ),
    ErrorItem.INNER_EX_DATA: _Field("Inner Ex Data", lambda r: r.inner.data),
    ErrorItem.GALLERY_ID: _Field("Gallery ID", lambda r: str(r.gallery_id)),
    ErrorItem.HTTP_USER_AGENT: _Field("HTTP User Agent", lambda r: r.user_agent),
    ErrorItem.FORM_VARIABLES: _Field("Form Variables", lambda r: r.form_variables),
    ErrorItem.COOKIES: _Field("Cookies", lambda r: r.cookies),
    ErrorItem.SESSION_VARIABLES: _Field(
        "Session Variables", lambda r: r.session_variables
    ),
    ErrorItem.SERVER_VARIABLES: _Field(
        "Server Variables", lambda r: r.server_variables
    ),
}

_unmapped = [item.name for item in ErrorItem if item not in _FIELDS]
if _unmapped:
    raise RuntimeError(f"ErrorItem members without a report field: {_unmapped}")

CONTEXT_SECTIONS = (
    ErrorItem.FORM_VARIABLES,
    ErrorItem.COOKIES,
    ErrorItem.SESSION_VARIABLES,
    ErrorItem.SERVER_VARIABLES,
)


def make_html_line_wrap_friendly(value: str | None) -> str:
    """Insert a space after every MAX_LINE_LENGTH non-whitespace characters.

    Browsers cannot wrap long unbroken tokens (cookies, encoded form values);
    existing whitespace is left exactly as it is.
    """

    if not value:
        return ""
    if len(value) < MAX_LINE_LENGTH:
        return value

    out: list[str] = []
    since_space = 0
    for ch in value:
        if ch.isspace():
            since_space = 0
        else:
            if since_space >= MAX_LINE_LENGTH:
                out.append(" ")
                since_space = 0
            since_space += 1
        out.append(ch)
    return "".join(out)


def _encode(text: str) -> str:
    return html.escape(text).replace("\r\n", "<br />").replace("\n", "<br />")


def _paragraph(text: str, css_class: str = "err_item") -> str:
    return f"<p class='{css_class}'>{_encode(text)}</p>"


def _paragraphs(pairs: Sequence[tuple[str, str]]) -> str:
    if not pairs:
        return _paragraph(NO_DATA_TEXT)
    return "".join(
        _paragraph(f"{k}: {make_html_line_wrap_friendly(v)}") for k, v in pairs
    )


def field_label(item: ErrorItem) -> str:
    return _FIELDS[item].label


def field_value(record: ErrorRecord, item: ErrorItem) -> str | Pairs:
    return _FIELDS[item].value(record)


def field_text(record: ErrorRecord, item: ErrorItem) -> str:
    """Plain-text display value; empty values show MISSING_DATA_TEXT."""

    value = field_value(record, item)
    if isinstance(value, str):
        return value or MISSING_DATA_TEXT
    if not value:
        return NO_DATA_TEXT
    return "\n".join(f"{k}: {v}" for k, v in value)


def field_html_name(item: ErrorItem) -> str:
    return _paragraph(field_label(item))


def field_html_value(record: ErrorRecord, item: ErrorItem) -> str:
    value = field_value(record, item)
    if isinstance(value, str):
        return _paragraph(value or MISSING_DATA_TEXT)
    return _paragraphs(value)


def summary_items(record: ErrorRecord) -> list[ErrorItem]:
    """Summary rows; optional inner-exception rows only when they have data."""

    items = [
        ErrorItem.URL,
        ErrorItem.TIMESTAMP,
        ErrorItem.EXCEPTION_TYPE,
        ErrorItem.MESSAGE,
        ErrorItem.SOURCE,
        ErrorItem.TARGET_SITE,
        ErrorItem.STACK_TRACE,
    ]
    if record.primary.data:
        items.append(ErrorItem.EXCEPTION_DATA)

    inner = record.inner
    for item, present in (
        (ErrorItem.INNER_EX_TYPE, inner.exception_type),
        (ErrorItem.INNER_EX_MESSAGE, inner.message),
        (ErrorItem.INNER_EX_SOURCE, inner.source),
        (ErrorItem.INNER_EX_TARGET_SITE, inner.target_site),
        (ErrorItem.INNER_EX_STACK_TRACE, inner.stack_trace),
    ):
        if present:
            items.append(item)
    if inner.data:
        items.append(ErrorItem.INNER_EX_DATA)

    items.extend(
        [ErrorItem.APP_ERROR_ID, ErrorItem.GALLERY_ID, ErrorItem.HTTP_USER_AGENT]
    )
    return items


def _row(name_html: str, value_html: str) -> str:
    return (
        f"<tr><td class='err_col1'>{name_html}</td>"
        f"<td class='err_col2'>{value_html}</td></tr>\n"
    )


def _table(pairs: Pairs) -> str:
    if not pairs:
        return (
            "<table cellpadding='0' cellspacing='0' class='err_table'>\n"
            f" <tr><td>{_paragraph(NO_DATA_TEXT)}</td></tr>\n</table>"
        )
    rows = "".join(
        _row(_paragraph(k), _paragraph(make_html_line_wrap_friendly(v)))
        for k, v in pairs
    )
    return f"<table cellpadding='0' cellspacing='0' class='err_table'>\n{rows}</table>"


def to_html(record: ErrorRecord) -> str:
    """HTML fragment for `record`; include CSS_STYLES in the containing page."""

    parts = [_paragraph(f"Error: {record.primary.message}", "err_h1")]

    parts.append(_paragraph("Error Summary", "err_h2"))
    parts.append("<table cellpadding='0' cellspacing='0' class='err_table'>")
    for item in summary_items(record):
        parts.append(_row(field_html_name(item), field_html_value(record, item)))
    parts.append("</table>")

    for item in CONTEXT_SECTIONS:
        value = field_value(record, item)
        parts.append(_paragraph(field_label(item), "err_h2"))
        parts.append(_table(value if isinstance(value, tuple) else ()))

    return "\n".join(parts) + "\n"


def to_html_page(record: ErrorRecord) -> str:
    """Self-contained HTML page; used as the e-mail body."""

    return "".join(
        [
            '<html xmlns="http://www.w3.org/1999/xhtml" xml:lang="en" lang="en">\n',
            "<head>\n",
            CSS_STYLES,
            "</head>\n",
            "<body>\n",
            "<div class=\"err_ns\">\n",
            f"<p>{html.escape(EMAIL_BODY_PREFIX)}</p>\n",
            to_html(record),
            "</div>\n",
            "</body></html>\n",
        ]
    )
