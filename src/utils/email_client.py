"""
Email client for test validation.

Sends mail over SMTP and searches the INBOX over IMAP so tests can check
that an application delivered the expected notifications.
"""

from __future__ import annotations

import email
import imaplib
import mimetypes
import smtplib
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from email import policy
from email.message import EmailMessage
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from loguru import logger

from src.config.settings import EmailSettings

# IMAP dates use English month abbreviations regardless of locale
_IMAP_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


class EmailClientError(Exception):
    """Raised when sending or reading mail fails."""


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


@dataclass
class EmailSearchCriteria:
    """Filters for an IMAP search. Empty criteria match every message."""

    from_addr: str = ""
    to_addr: str = ""
    subject: str = ""
    since: Optional[date] = None
    unseen: bool = False

    def to_imap_query(self) -> str:
        """Build the IMAP SEARCH query, e.g. ``FROM "a@b.c" UNSEEN``."""
        parts = []
        if self.from_addr:
            parts.append(f"FROM {_quote(self.from_addr)}")
        if self.to_addr:
            parts.append(f"TO {_quote(self.to_addr)}")
        if self.subject:
            parts.append(f"SUBJECT {_quote(self.subject)}")
        if self.since:
            since = self.since
            parts.append(f"SINCE {since.day:02d}-{_IMAP_MONTHS[since.month - 1]}-{since.year}")
        if self.unseen:
            parts.append("UNSEEN")
        return " ".join(parts) or "ALL"


@dataclass
class EmailAttachment:
    filename: str
    content_type: str
    size: int
    content: bytes = b""


@dataclass
class ReceivedEmail:
    """A message read from the mailbox."""

    id: str
    from_addr: str
    to_addr: str
    subject: str
    body: str
    date: Optional[datetime] = None
    attachments: List[EmailAttachment] = field(default_factory=list)


def parse_message(message_id: str, raw: bytes) -> ReceivedEmail:
    """Parse raw RFC 822 bytes into a ReceivedEmail."""
    msg = email.message_from_bytes(raw, policy=policy.default)

    body_part = msg.get_body(preferencelist=("plain", "html"))
    body = body_part.get_content() if body_part is not None else ""

    sent_at = None
    if msg["Date"]:
        try:
            sent_at = parsedate_to_datetime(str(msg["Date"]))
        except (TypeError, ValueError):
            logger.debug(f"Unparseable Date header on message {message_id}: {msg['Date']}")

    attachments = []
    for part in msg.iter_attachments():
        payload = part.get_payload(decode=True) or b""
        attachments.append(EmailAttachment(
            filename=part.get_filename() or "",
            content_type=part.get_content_type(),
            size=len(payload),
            content=payload,
        ))

    return ReceivedEmail(
        id=message_id,
        from_addr=str(msg["From"] or ""),
        to_addr=str(msg["To"] or ""),
        subject=str(msg["Subject"] or ""),
        body=body,
        date=sent_at,
        attachments=attachments,
    )


class EmailClient:
    """
    SMTP sender and IMAP reader for one mailbox.

    Usage::

        client = EmailClient(load_settings().email)
        client.send_email("qa@example.com", "Ping", "hello")
        message = client.wait_for_email(EmailSearchCriteria(subject="Ping"), timeout=60)
    """

    def __init__(
        self,
        settings: EmailSettings,
        smtp_factory: Optional[Callable[[], smtplib.SMTP]] = None,
        imap_factory: Optional[Callable[[], imaplib.IMAP4]] = None,
    ) -> None:
        """
        Args:
            settings: SMTP/IMAP hosts and credentials.
            smtp_factory: Returns a connected SMTP client (defaults to the settings).
            imap_factory: Returns a connected IMAP client (defaults to the settings).

        Raises:
            EmailClientError: If user or password is missing.
        """
        if not settings.user or not settings.password:
            raise EmailClientError("Email credentials are not configured")
        self._settings = settings
        self._smtp_factory = smtp_factory or self._default_smtp
        self._imap_factory = imap_factory or self._default_imap
        logger.info(
            f"Email client initialized: smtp={settings.host}:{settings.port}, "
            f"imap={settings.resolved_imap_host}:{settings.imap_port}"
        )

    def _default_smtp(self) -> smtplib.SMTP:
        if self._settings.secure:
            return smtplib.SMTP_SSL(self._settings.host, self._settings.port)
        return smtplib.SMTP(self._settings.host, self._settings.port)

    def _default_imap(self) -> imaplib.IMAP4:
        return imaplib.IMAP4_SSL(self._settings.resolved_imap_host, self._settings.imap_port)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        attachments: Optional[List[str]] = None,
    ) -> None:
        """
        Send a message from the configured account.

        Bodies containing markup are sent with an HTML alternative.

        Raises:
            EmailClientError: If an attachment is missing or SMTP fails.
        """
        msg = EmailMessage()
        msg["From"] = self._settings.user
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        if "<" in body:
            msg.add_alternative(body, subtype="html")

        for attachment in attachments or []:
            path = Path(attachment)
            if not path.is_file():
                raise EmailClientError(f"Attachment not found: {attachment}")
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            maintype, subtype = content_type.split("/", 1)
            msg.add_attachment(
                path.read_bytes(), maintype=maintype, subtype=subtype, filename=path.name
            )

        try:
            with self._smtp_factory() as server:
                if not self._settings.secure:
                    server.starttls()
                server.login(self._settings.user, self._settings.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to} ('{subject}'): {e}")
            raise EmailClientError(f"Failed to send email: {e}") from e
        logger.info(f"Email sent successfully to {to}: {subject}")

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @contextmanager
    def _mailbox(self) -> Iterator[imaplib.IMAP4]:
        try:
            imap = self._imap_factory()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.error(f"Failed to connect to IMAP server: {e}")
            raise EmailClientError(f"Failed to connect to IMAP server: {e}") from e
        try:
            imap.login(self._settings.user, self._settings.password)
            imap.select("INBOX")
        except (imaplib.IMAP4.error, OSError) as e:
            imap.shutdown()
            logger.error(f"Failed to log in to IMAP server: {e}")
            raise EmailClientError(f"Failed to log in to IMAP server: {e}") from e
        try:
            yield imap
        except (imaplib.IMAP4.error, OSError) as e:
            raise EmailClientError(f"IMAP operation failed: {e}") from e
        finally:
            imap.logout()

    @staticmethod
    def _search_ids(imap: imaplib.IMAP4, criteria: EmailSearchCriteria) -> List[bytes]:
        status, data = imap.search(None, criteria.to_imap_query())
        if status != "OK":
            raise EmailClientError(f"IMAP search failed: {data}")
        return data[0].split() if data and data[0] else []

    def search_emails(
        self,
        criteria: EmailSearchCriteria,
        max_results: int = 10,
    ) -> List[ReceivedEmail]:
        """
        Return messages matching the criteria, newest first.

        Messages are fetched with BODY.PEEK so they stay unread.
        """
        with self._mailbox() as imap:
            message_ids = self._search_ids(imap, criteria)
            newest = list(reversed(message_ids))[:max_results]

            messages = []
            for message_id in newest:
                status, data = imap.fetch(message_id, "(BODY.PEEK[])")
                if status != "OK" or not data or not isinstance(data[0], tuple):
                    logger.warning(f"Could not fetch message {message_id!r}")
                    continue
                messages.append(parse_message(message_id.decode(), data[0][1]))

        logger.info(f"Found {len(messages)} emails matching criteria")
        return messages

    def wait_for_email(
        self,
        criteria: EmailSearchCriteria,
        timeout: float = 30.0,
        poll_interval: float = 5.0,
    ) -> Optional[ReceivedEmail]:
        """Poll the mailbox until a matching message arrives, or return None."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                messages = self.search_emails(criteria, max_results=1)
                if messages:
                    logger.info("Email found matching criteria")
                    return messages[0]
                logger.debug(f"Email not found yet, waiting {poll_interval}s...")
            except EmailClientError as e:
                logger.warning(f"Error during email search, retrying: {e}")
            time.sleep(poll_interval)

        logger.warning(f"Email not found within timeout period: {timeout}s")
        return None

    def validate_email_content(
        self,
        criteria: EmailSearchCriteria,
        expected_content: str,
        exact_match: bool = False,
    ) -> bool:
        """Check the newest matching message's body; errors count as failure."""
        try:
            messages = self.search_emails(criteria, max_results=1)
        except EmailClientError as e:
            logger.error(f"Email content validation error: {e}")
            return False

        if not messages:
            logger.error("No emails found matching criteria")
            return False

        body = messages[0].body
        matches = body == expected_content if exact_match else expected_content in body
        if matches:
            logger.info("Email content validation passed")
        else:
            logger.error(
                f"Email content validation failed. Expected: {expected_content!r}, "
                f"actual: {body[:200]!r}..."
            )
        return matches

    def mark_emails_as_read(self, criteria: EmailSearchCriteria) -> int:
        """Flag matching messages as seen. Returns the number of messages."""
        with self._mailbox() as imap:
            message_ids = self._search_ids(imap, criteria)
            for message_id in message_ids:
                imap.store(message_id, "+FLAGS", "\\Seen")
        logger.info(f"Marked {len(message_ids)} emails as read")
        return len(message_ids)

    def delete_emails(self, criteria: EmailSearchCriteria) -> int:
        """Delete matching messages. Returns the number of messages."""
        with self._mailbox() as imap:
            message_ids = self._search_ids(imap, criteria)
            for message_id in message_ids:
                imap.store(message_id, "+FLAGS", "\\Deleted")
            if message_ids:
                imap.expunge()
        logger.info(f"Deleted {len(message_ids)} emails")
        return len(message_ids)
