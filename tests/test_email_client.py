"""
Tests for the SMTP/IMAP email client (server connections mocked).
"""

from __future__ import annotations

import imaplib
import smtplib
import time
from datetime import date
from email.message import EmailMessage
from pathlib import Path
from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from src.config.settings import EmailSettings
from src.utils.email_client import (
    EmailClient,
    EmailClientError,
    EmailSearchCriteria,
    ReceivedEmail,
    parse_message,
)


def _raw_message(
    subject: str = "Your report is ready",
    body: str = "Report 42 finished.",
    attachment: Optional[bytes] = None,
) -> bytes:
    msg = EmailMessage()
    msg["From"] = "noreply@example.com"
    msg["To"] = "qa@example.com"
    msg["Subject"] = subject
    msg["Date"] = "Mon, 05 Jan 2026 10:30:00 +0000"
    msg.set_content(body)
    if attachment is not None:
        msg.add_attachment(attachment, maintype="text", subtype="csv", filename="report.csv")
    return msg.as_bytes()


@pytest.fixture
def settings() -> EmailSettings:
    return EmailSettings(user="qa@example.com", password="app-password")


@pytest.fixture
def smtp() -> MagicMock:
    server = MagicMock(spec=smtplib.SMTP)
    server.__enter__.return_value = server
    return server


@pytest.fixture
def imap() -> MagicMock:
    mailbox = MagicMock()
    mailbox.search.return_value = ("OK", [b""])
    return mailbox


@pytest.fixture
def client(settings: EmailSettings, smtp: MagicMock, imap: MagicMock) -> EmailClient:
    return EmailClient(settings, smtp_factory=lambda: smtp, imap_factory=lambda: imap)


def _serve(imap: MagicMock, messages: List[bytes]) -> None:
    """Make the mocked mailbox hold the given messages (ids 1..n)."""
    ids = b" ".join(str(i).encode() for i in range(1, len(messages) + 1))
    imap.search.return_value = ("OK", [ids])
    imap.fetch.side_effect = lambda message_id, spec: (
        "OK",
        [(b"header", messages[int(message_id) - 1])],
    )


class TestEmailSearchCriteria:

    def test_empty_matches_all(self) -> None:
        assert EmailSearchCriteria().to_imap_query() == "ALL"

    def test_full_query(self) -> None:
        criteria = EmailSearchCriteria(
            from_addr="noreply@example.com",
            subject='Report "42"',
            since=date(2026, 3, 7),
            unseen=True,
        )
        assert criteria.to_imap_query() == (
            'FROM "noreply@example.com" SUBJECT "Report \\"42\\"" SINCE 07-Mar-2026 UNSEEN'
        )


class TestParseMessage:

    def test_plain_message(self) -> None:
        message = parse_message("7", _raw_message())

        assert isinstance(message, ReceivedEmail)
        assert message.id == "7"
        assert message.from_addr == "noreply@example.com"
        assert message.subject == "Your report is ready"
        assert message.body.strip() == "Report 42 finished."
        assert message.date.year == 2026
        assert message.attachments == []

    def test_attachment(self) -> None:
        message = parse_message("7", _raw_message(attachment=b"id,value\n1,2\n"))

        assert len(message.attachments) == 1
        attachment = message.attachments[0]
        assert attachment.filename == "report.csv"
        assert attachment.content_type == "text/csv"
        assert attachment.content == b"id,value\n1,2\n"


class TestSendEmail:

    def test_requires_credentials(self) -> None:
        with pytest.raises(EmailClientError, match="credentials"):
            EmailClient(EmailSettings())

    def test_send_plain(self, client: EmailClient, smtp: MagicMock) -> None:
        client.send_email("dev@example.com", "Ping", "hello")

        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("qa@example.com", "app-password")
        sent = smtp.send_message.call_args.args[0]
        assert sent["To"] == "dev@example.com"
        assert sent["Subject"] == "Ping"
        assert not sent.is_multipart()

    def test_send_html_alternative(self, client: EmailClient, smtp: MagicMock) -> None:
        client.send_email("dev@example.com", "Ping", "<b>hello</b>")

        sent = smtp.send_message.call_args.args[0]
        assert sent.get_content_type() == "multipart/alternative"

    def test_secure_skips_starttls(self, smtp: MagicMock, imap: MagicMock) -> None:
        settings = EmailSettings(user="qa@example.com", password="pw", secure=True, port=465)
        client = EmailClient(settings, smtp_factory=lambda: smtp, imap_factory=lambda: imap)

        client.send_email("dev@example.com", "Ping", "hello")

        smtp.starttls.assert_not_called()

    def test_send_with_attachment(
        self, client: EmailClient, smtp: MagicMock, tmp_path: Path
    ) -> None:
        report = tmp_path / "report.csv"
        report.write_text("a,b\n", encoding="utf-8")

        client.send_email("dev@example.com", "Report", "attached", attachments=[str(report)])

        sent = smtp.send_message.call_args.args[0]
        assert [a.get_filename() for a in sent.iter_attachments()] == ["report.csv"]

    def test_missing_attachment(self, client: EmailClient, smtp: MagicMock, tmp_path: Path) -> None:
        with pytest.raises(EmailClientError, match="Attachment not found"):
            client.send_email("dev@example.com", "Report", "x", attachments=[str(tmp_path / "no.csv")])
        smtp.send_message.assert_not_called()

    def test_smtp_failure_wrapped(self, client: EmailClient, smtp: MagicMock) -> None:
        smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        with pytest.raises(EmailClientError, match="Failed to send email"):
            client.send_email("dev@example.com", "Ping", "hello")


class TestReadMailbox:

    def test_search_newest_first(self, client: EmailClient, imap: MagicMock) -> None:
        _serve(imap, [_raw_message(subject="first"), _raw_message(subject="second")])

        messages = client.search_emails(EmailSearchCriteria(subject="report"))

        assert [m.subject for m in messages] == ["second", "first"]
        imap.login.assert_called_once_with("qa@example.com", "app-password")
        imap.select.assert_called_once_with("INBOX")
        imap.search.assert_called_once_with(None, 'SUBJECT "report"')
        imap.fetch.assert_any_call(b"2", "(BODY.PEEK[])")
        imap.logout.assert_called_once()

    def test_search_max_results(self, client: EmailClient, imap: MagicMock) -> None:
        _serve(imap, [_raw_message(subject=str(i)) for i in range(5)])

        messages = client.search_emails(EmailSearchCriteria(), max_results=2)

        assert [m.subject for m in messages] == ["4", "3"]

    def test_search_failure(self, client: EmailClient, imap: MagicMock) -> None:
        imap.search.return_value = ("NO", [b"bad query"])
        with pytest.raises(EmailClientError, match="search failed"):
            client.search_emails(EmailSearchCriteria())
        imap.logout.assert_called_once()

    @pytest.mark.parametrize("step", ["login", "select"])
    def test_login_failure_closes_connection(
        self, client: EmailClient, imap: MagicMock, step: str
    ) -> None:
        getattr(imap, step).side_effect = imaplib.IMAP4.error("AUTHENTICATIONFAILED")

        with pytest.raises(EmailClientError, match="log in to IMAP server"):
            client.search_emails(EmailSearchCriteria())

        imap.shutdown.assert_called_once()
        imap.logout.assert_not_called()

    def test_connection_failure(self, settings: EmailSettings, smtp: MagicMock) -> None:
        def refuse() -> MagicMock:
            raise ConnectionRefusedError("imap.example.com:993")

        client = EmailClient(settings, smtp_factory=lambda: smtp, imap_factory=refuse)

        with pytest.raises(EmailClientError, match="connect to IMAP server"):
            client.search_emails(EmailSearchCriteria())

    def test_wait_for_email(
        self, client: EmailClient, imap: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(time, "sleep", lambda seconds: None)
        raw = _raw_message()
        imap.search.side_effect = [("OK", [b""]), ("OK", [b"1"])]
        imap.fetch.return_value = ("OK", [(b"header", raw)])

        message = client.wait_for_email(EmailSearchCriteria(), timeout=30, poll_interval=0.01)

        assert message is not None
        assert message.subject == "Your report is ready"

    def test_wait_for_email_timeout(
        self, client: EmailClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(time, "sleep", lambda seconds: None)
        assert client.wait_for_email(EmailSearchCriteria(), timeout=0, poll_interval=0.01) is None

    def test_validate_email_content(self, client: EmailClient, imap: MagicMock) -> None:
        _serve(imap, [_raw_message(body="Report 42 finished.")])

        assert client.validate_email_content(EmailSearchCriteria(), "Report 42")
        assert not client.validate_email_content(EmailSearchCriteria(), "Report 42", exact_match=True)
        assert not client.validate_email_content(EmailSearchCriteria(), "Report 43")

    def test_validate_without_messages(self, client: EmailClient) -> None:
        assert not client.validate_email_content(EmailSearchCriteria(), "anything")

    def test_mark_as_read(self, client: EmailClient, imap: MagicMock) -> None:
        imap.search.return_value = ("OK", [b"1 2"])

        assert client.mark_emails_as_read(EmailSearchCriteria(unseen=True)) == 2
        imap.store.assert_any_call(b"1", "+FLAGS", "\\Seen")

    def test_delete_emails(self, client: EmailClient, imap: MagicMock) -> None:
        imap.search.return_value = ("OK", [b"3"])

        assert client.delete_emails(EmailSearchCriteria(from_addr="noreply@example.com")) == 1
        imap.store.assert_called_once_with(b"3", "+FLAGS", "\\Deleted")
        imap.expunge.assert_called_once()

    def test_delete_nothing(self, client: EmailClient, imap: MagicMock) -> None:
        assert client.delete_emails(EmailSearchCriteria()) == 0
        imap.expunge.assert_not_called()
