"""E-mail notification of newly recorded errors.

Sending is best-effort: a failure for one recipient is written into the
record's exception data and the remaining recipients are still tried.
"""

from __future__ import annotations

import dataclasses
import email.errors
import logging
import re
import smtplib
import ssl
from email.headerregistry import Address
from email.message import EmailMessage
from typing import Protocol

from errorlog.core.settings import Settings
from errorlog.services import report
from errorlog.services.capture import (
    ErrorRecord,
    exception_type_name,
    inner_exception,
)
from errorlog.services.gallery_settings import (
    GallerySettings,
    GallerySettingsCollection,
    Recipient,
)


logger = logging.getLogger(__name__)

# Informational entries share the error pipeline but never produce e-mail.
INFO_MESSAGE_PREFIX = "INFO (not an error):"

CANNOT_SEND_EMAIL_LABEL = "Cannot Send Email"
FALLBACK_SUBJECT = "Gallery error report"
DEFAULT_SMTP_PORT = 25

_EMAIL_PATTERN = re.compile(r"\w+([-+.']\w+)*@\w+([-.]\w+)*\.\w+([-.]\w+)*")


def _passes_pattern(value: str) -> bool:
    return _EMAIL_PATTERN.search(value) is not None


def _passes_address_parser(value: str) -> bool:
    try:
        addr = Address(addr_spec=value)
    except (ValueError, IndexError, email.errors.MessageError):
        return False
    return bool(addr.username) and bool(addr.domain)


def is_valid_email(value: str | None) -> bool:
    """Both the pattern and the RFC 5322 address parser must accept `value`."""

    if not value:
        return False
    return _passes_pattern(value) and _passes_address_parser(value)


def parse_smtp_port(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


@dataclasses.dataclass(frozen=True)
class SmtpOptions:
    host: str
    port: int
    use_ssl: bool
    timeout_s: float


def smtp_options_for(
    gallery: GallerySettings,
    *,
    default_host: str,
    default_port: int,
    timeout_s: float,
) -> SmtpOptions:
    host = default_host
    if gallery.smtp_server.strip():
        host = gallery.smtp_server.strip()

    # The default port is kept unless the gallery names a different, valid one.
    port = default_port
    parsed = parse_smtp_port(gallery.smtp_server_port)
    if parsed is not None and parsed > 0 and parsed != DEFAULT_SMTP_PORT:
        port = parsed

    return SmtpOptions(
        host=host,
        port=port,
        use_ssl=gallery.send_email_using_ssl,
        timeout_s=timeout_s,
    )


class Mailer(Protocol):
    def send(self, message: EmailMessage, options: SmtpOptions) -> None: ...


class SmtpMailer:
    """Sends each message over its own SMTP connection."""

    def send(self, message: EmailMessage, options: SmtpOptions) -> None:
        with smtplib.SMTP(
            options.host, options.port, timeout=options.timeout_s
        ) as smtp:
            if options.use_ssl:
                smtp.starttls(context=ssl.create_default_context())
            smtp.send_message(message)


def _failure_text(exc: BaseException) -> str:
    text = f"{exception_type_name(exc)}: {exc}"
    inner = inner_exception(exc)
    if inner is not None:
        text += f" {exception_type_name(inner)}: {inner}"
    return text


class NotificationDispatcher:
    def __init__(
        self,
        mailer: Mailer | None = None,
        *,
        default_smtp_host: str = "localhost",
        default_smtp_port: int = DEFAULT_SMTP_PORT,
        timeout_s: float = 10.0,
        subject_prefix: str = "Gallery error:",
    ) -> None:
        self._mailer = mailer or SmtpMailer()
        self._default_host = default_smtp_host
        self._default_port = default_smtp_port
        self._timeout_s = timeout_s
        self._subject_prefix = subject_prefix

    @classmethod
    def from_settings(
        cls, settings: Settings, mailer: Mailer | None = None
    ) -> NotificationDispatcher:
        return cls(
            mailer,
            default_smtp_host=settings.smtp_host,
            default_smtp_port=settings.smtp_port,
            timeout_s=float(settings.smtp_timeout_s),
            subject_prefix=settings.email_subject_prefix,
        )

    def notify(
        self, record: ErrorRecord, settings: GallerySettingsCollection
    ) -> list[str]:
        """E-mail `record` to the configured recipients.

        A gallery error goes to that gallery's recipients. A system-wide
        error goes to the recipients of every gallery, each user at most
        once. Returns the user names that were sent an e-mail.
        """

        if record.primary.message.casefold().startswith(INFO_MESSAGE_PREFIX.casefold()):
            return []

        if not record.is_system_wide:
            gallery = settings.find_by_gallery_id(record.gallery_id)
            if gallery is None:
                return []
            return self._notify_gallery(record, gallery, set())

        notified: list[str] = []
        already_notified: set[str] = set()
        for gallery in settings:
            sent = self._notify_gallery(record, gallery, already_notified)
            notified.extend(sent)
            already_notified.update(sent)
        return notified

    def _notify_gallery(
        self,
        record: ErrorRecord,
        gallery: GallerySettings,
        already_notified: set[str],
    ) -> list[str]:
        if not gallery.send_email_on_error:
            return []

        options = smtp_options_for(
            gallery,
            default_host=self._default_host,
            default_port=self._default_port,
            timeout_s=self._timeout_s,
        )
        notified: list[str] = []
        for user in gallery.users_to_notify:
            if user.user_name in already_notified or user.user_name in notified:
                continue
            if self._send(record, user, gallery, options):
                notified.append(user.user_name)
        return notified

    def subject_for(self, record: ErrorRecord) -> str:
        if not record.primary.exception_type:
            return FALLBACK_SUBJECT
        return f"{self._subject_prefix} {record.primary.exception_type}".strip()

    def _build_message(
        self, record: ErrorRecord, user: Recipient, gallery: GallerySettings
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = Address(
            display_name=gallery.email_from_name,
            addr_spec=gallery.email_from_address,
        )
        msg["To"] = Address(display_name=user.user_name, addr_spec=user.email)
        msg["Subject"] = self.subject_for(record)
        msg.set_content(report.to_html_page(record), subtype="html")
        return msg

    def _send(
        self,
        record: ErrorRecord,
        user: Recipient,
        gallery: GallerySettings,
        options: SmtpOptions,
    ) -> bool:
        if not is_valid_email(user.email):
            return False

        try:
            self._mailer.send(self._build_message(record, user, gallery), options)
        except Exception as e:
            text = _failure_text(e)
            record.add_diagnostic(CANNOT_SEND_EMAIL_LABEL, text)
            logger.warning(
                "Cannot e-mail error %s to %s via %s:%s: %s",
                record.id,
                user.user_name,
                options.host,
                options.port,
                text,
            )
            return False
        return True
