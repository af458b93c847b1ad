"""Tests for GmailClient — the discovery-client service is fully mocked."""

import base64
import json
from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from unified_inbox.errors import GmailError
from unified_inbox.gmail.client import GmailClient
from unified_inbox.gmail.types import ComposedEmail

ACCOUNT = "alice@example.com"


# ── Helpers ────────────────────────────────────────────────────────────────────


def _http_error(status: int) -> HttpError:
    resp = httplib2.Response({"status": status})
    content = json.dumps({"error": {"code": status, "message": "boom"}}).encode()
    return HttpError(resp, content)


def _request(result: Any = None, error: Exception | None = None) -> MagicMock:
    """A prepared request whose execute() returns result or raises error."""
    req = MagicMock()
    if error is not None:
        req.execute.side_effect = error
    else:
        req.execute.return_value = result
    return req


def _metadata(
    msg_id: str,
    *,
    subject: str | None = "Quarterly numbers",
    sender: str = "Bob Smith <bob@example.com>",
    to: str = "alice@example.com, carol@example.com",
    internal_date: str | None = "1767225600000",
    labels: tuple[str, ...] = ("INBOX", "UNREAD"),
    message_id: str | None = "<CAF123@mail.gmail.com>",
) -> dict[str, Any]:
    headers = [{"name": "From", "value": sender}, {"name": "To", "value": to}]
    if subject is not None:
        headers.append({"name": "Subject", "value": subject})
    if message_id is not None:
        headers.append({"name": "Message-ID", "value": message_id})
    data: dict[str, Any] = {
        "id": msg_id,
        "threadId": f"thread_{msg_id}",
        "snippet": "Here are the numbers",
        "labelIds": list(labels),
        "payload": {"headers": headers},
    }
    if internal_date is not None:
        data["internalDate"] = internal_date
    return data


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


# ── Fixtures ───────────────────────────────────────────────────────────────────


@pytest.fixture
def service() -> MagicMock:
    return MagicMock()


@pytest.fixture
def messages(service: MagicMock) -> MagicMock:
    """The users().messages() resource."""
    return service.users.return_value.messages.return_value


@pytest.fixture
def labels(service: MagicMock) -> MagicMock:
    """The users().labels() resource."""
    return service.users.return_value.labels.return_value


@pytest.fixture
def client(service: MagicMock) -> GmailClient:
    return GmailClient(service, ACCOUNT)


def _serve_metadata(messages: MagicMock, by_id: dict[str, Any]) -> None:
    """Route messages().get(id=...) to a dict; an Exception value is raised."""

    def _get(**kwargs: Any) -> MagicMock:
        value = by_id.get(kwargs["id"], _http_error(404))
        if isinstance(value, Exception):
            return _request(error=value)
        return _request(value)

    messages.get.side_effect = _get


# ── _parse_metadata ────────────────────────────────────────────────────────────


class TestParseMetadata:
    def test_full_resource(self) -> None:
        msg = GmailClient._parse_metadata(_metadata("m1"), ACCOUNT)
        assert msg.id == "m1"
        assert msg.account == ACCOUNT
        assert msg.thread_id == "thread_m1"
        assert msg.subject == "Quarterly numbers"
        assert msg.sender == "Bob Smith <bob@example.com>"
        assert msg.to == ["alice@example.com", "carol@example.com"]
        assert msg.date == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert msg.snippet == "Here are the numbers"
        assert msg.labels == frozenset({"INBOX", "UNREAD"})
        assert msg.is_unread is True
        assert msg.reply_message_id == "<CAF123@mail.gmail.com>"

    def test_read_message_is_not_unread(self) -> None:
        msg = GmailClient._parse_metadata(_metadata("m1", labels=("INBOX",)), ACCOUNT)
        assert msg.is_unread is False

    def test_missing_subject_gets_placeholder(self) -> None:
        msg = GmailClient._parse_metadata(_metadata("m1", subject=None), ACCOUNT)
        assert msg.subject == "(No subject)"

    def test_missing_internal_date_is_epoch(self) -> None:
        msg = GmailClient._parse_metadata(_metadata("m1", internal_date=None), ACCOUNT)
        assert msg.date == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_header_lookup_is_case_insensitive(self) -> None:
        data = _metadata("m1", message_id=None)
        data["payload"]["headers"].append({"name": "message-id", "value": "<lower@x>"})
        msg = GmailClient._parse_metadata(data, ACCOUNT)
        assert msg.reply_message_id == "<lower@x>"

    def test_missing_message_id_is_none(self) -> None:
        msg = GmailClient._parse_metadata(_metadata("m1", message_id=None), ACCOUNT)
        assert msg.reply_message_id is None

    def test_empty_to_header(self) -> None:
        msg = GmailClient._parse_metadata(_metadata("m1", to=""), ACCOUNT)
        assert msg.to == []


# ── _extract_bodies ────────────────────────────────────────────────────────────


class TestExtractBodies:
    def test_nested_multipart_collects_both_kinds(self) -> None:
        payload = {
            "mimeType": "multipart/mixed",
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {"mimeType": "text/plain", "body": {"data": _b64("Hello plain")}},
                        {"mimeType": "text/html", "body": {"data": _b64("<p>Hello</p>")}},
                    ],
                },
                {"mimeType": "application/pdf", "body": {"attachmentId": "att1"}},
            ],
        }
        full = GmailClient._extract_bodies(payload)
        assert full.body == "Hello plain"
        assert full.html == "<p>Hello</p>"

    def test_parts_concatenated_in_document_order(self) -> None:
        payload = {
            "mimeType": "multipart/mixed",
            "parts": [
                {"mimeType": "text/plain", "body": {"data": _b64("one ")}},
                {
                    "mimeType": "multipart/related",
                    "parts": [{"mimeType": "text/plain", "body": {"data": _b64("two ")}}],
                },
                {"mimeType": "text/plain", "body": {"data": _b64("three")}},
            ],
        }
        assert GmailClient._extract_bodies(payload).body == "one two three"

    def test_html_only_uses_html_as_body(self) -> None:
        payload = {"mimeType": "text/html", "body": {"data": _b64("<b>hi</b>")}}
        full = GmailClient._extract_bodies(payload)
        assert full.body == "<b>hi</b>"
        assert full.html == "<b>hi</b>"

    def test_single_part_of_other_type_falls_back_to_body(self) -> None:
        payload = {"mimeType": "text/calendar", "body": {"data": _b64("BEGIN:VCALENDAR")}}
        full = GmailClient._extract_bodies(payload)
        assert full.body == "BEGIN:VCALENDAR"
        assert full.html is None

    def test_empty_payload(self) -> None:
        full = GmailClient._extract_bodies({})
        assert full.body == ""
        assert full.html is None

    def test_unpadded_utf8_data(self) -> None:
        payload = {"mimeType": "text/plain", "body": {"data": _b64("Grüße ✓")}}
        assert GmailClient._extract_bodies(payload).body == "Grüße ✓"


# ── list_messages / search ─────────────────────────────────────────────────────


class TestListMessages:
    async def test_resolves_metadata_for_each_id(
        self, client: GmailClient, messages: MagicMock
    ) -> None:
        messages.list.return_value = _request(
            {"messages": [{"id": "m1"}, {"id": "m2"}], "nextPageToken": "tok2"}
        )
        _serve_metadata(messages, {"m1": _metadata("m1"), "m2": _metadata("m2")})

        page = await client.list_messages(max_results=2)

        assert [m.id for m in page.messages] == ["m1", "m2"]
        assert page.next_page_token == "tok2"
        messages.get.assert_any_call(
            userId="me",
            id="m1",
            format="metadata",
            metadataHeaders=["From", "To", "Subject", "Date", "Message-ID"],
        )

    async def test_omits_unset_parameters(self, client: GmailClient, messages: MagicMock) -> None:
        messages.list.return_value = _request({})

        await client.list_messages(max_results=5)

        messages.list.assert_called_once_with(userId="me", maxResults=5)

    async def test_passes_labels_query_and_page_token(
        self, client: GmailClient, messages: MagicMock
    ) -> None:
        messages.list.return_value = _request({})

        await client.list_messages(
            max_results=5, page_token="tok", label_ids=["INBOX"], query="is:unread"
        )

        messages.list.assert_called_once_with(
            userId="me", maxResults=5, pageToken="tok", labelIds=["INBOX"], q="is:unread"
        )

    async def test_empty_list_makes_no_metadata_calls(
        self, client: GmailClient, messages: MagicMock
    ) -> None:
        messages.list.return_value = _request({"resultSizeEstimate": 0})

        page = await client.list_messages()

        assert page.messages == []
        assert page.next_page_token is None
        messages.get.assert_not_called()

    async def test_failed_metadata_fetch_is_dropped(
        self, client: GmailClient, messages: MagicMock
    ) -> None:
        messages.list.return_value = _request({"messages": [{"id": "m1"}, {"id": "m2"}, {"id": "m3"}]})
        _serve_metadata(
            messages,
            {"m1": _metadata("m1"), "m2": _http_error(500), "m3": _metadata("m3")},
        )

        page = await client.list_messages()

        assert [m.id for m in page.messages] == ["m1", "m3"]

    async def test_list_failure_raises_gmail_error(
        self, client: GmailClient, messages: MagicMock
    ) -> None:
        messages.list.return_value = _request(error=_http_error(403))

        with pytest.raises(GmailError) as exc_info:
            await client.list_messages()
        assert exc_info.value.status == 403

    async def test_search_passes_query(self, client: GmailClient, messages: MagicMock) -> None:
        messages.list.return_value = _request({"messages": [{"id": "m1"}]})
        _serve_metadata(messages, {"m1": _metadata("m1")})

        result = await client.search_messages("from:bob", max_results=7)

        assert [m.id for m in result] == ["m1"]
        messages.list.assert_called_once_with(userId="me", maxResults=7, q="from:bob")

    async def test_bounded_message_concurrency_still_resolves_all(
        self, service: MagicMock, messages: MagicMock
    ) -> None:
        client = GmailClient(service, ACCOUNT, message_concurrency=2)
        ids = [f"m{i}" for i in range(6)]
        messages.list.return_value = _request({"messages": [{"id": i} for i in ids]})
        _serve_metadata(messages, {i: _metadata(i) for i in ids})

        page = await client.list_messages(max_results=6)

        assert [m.id for m in page.messages] == ids


# ── get_message / get_full_message ─────────────────────────────────────────────


class TestGetMessage:
    async def test_found(self, client: GmailClient, messages: MagicMock) -> None:
        _serve_metadata(messages, {"m1": _metadata("m1")})
        msg = await client.get_message("m1")
        assert msg is not None
        assert msg.id == "m1"

    async def test_not_found_returns_none(self, client: GmailClient, messages: MagicMock) -> None:
        _serve_metadata(messages, {})
        assert await client.get_message("missing") is None

    async def test_other_errors_propagate(self, client: GmailClient, messages: MagicMock) -> None:
        _serve_metadata(messages, {"m1": _http_error(500)})
        with pytest.raises(GmailError) as exc_info:
            await client.get_message("m1")
        assert exc_info.value.status == 500

    async def test_full_message(self, client: GmailClient, messages: MagicMock) -> None:
        messages.get.return_value = _request(
            {"payload": {"mimeType": "text/plain", "body": {"data": _b64("Body text")}}}
        )

        full = await client.get_full_message("m1")

        assert full is not None
        assert full.body == "Body text"
        messages.get.assert_called_once_with(userId="me", id="m1", format="full")

    async def test_full_message_not_found(self, client: GmailClient, messages: MagicMock) -> None:
        messages.get.return_value = _request(error=_http_error(404))
        assert await client.get_full_message("missing") is None


# ── Counters & labels ──────────────────────────────────────────────────────────


class TestCounters:
    async def test_unread_and_total_counts(self, client: GmailClient, labels: MagicMock) -> None:
        labels.get.return_value = _request(
            {"id": "INBOX", "messagesUnread": 7, "messagesTotal": 120}
        )

        assert await client.get_unread_count() == 7
        assert await client.get_total_count() == 120
        labels.get.assert_called_with(userId="me", id="INBOX")

    async def test_missing_counts_are_zero(self, client: GmailClient, labels: MagicMock) -> None:
        labels.get.return_value = _request({"id": "INBOX"})
        assert await client.get_unread_count() == 0
        assert await client.get_total_count() == 0

    async def test_get_labels(self, client: GmailClient, labels: MagicMock) -> None:
        labels.list.return_value = _request(
            {"labels": [{"id": "INBOX", "name": "INBOX"}, {"id": "Label_1", "name": "Work"}, {"id": "x"}]}
        )

        result = await client.get_labels()

        assert [(lbl.id, lbl.name) for lbl in result] == [("INBOX", "INBOX"), ("Label_1", "Work")]


# ── Mutations ──────────────────────────────────────────────────────────────────


class TestSend:
    async def test_send_without_thread(self, client: GmailClient, messages: MagicMock) -> None:
        messages.send.return_value = _request({"id": "sent1"})
        email = ComposedEmail(document="doc", raw="cmF3")

        assert await client.send(email) == "sent1"
        messages.send.assert_called_once_with(userId="me", body={"raw": "cmF3"})

    async def test_send_in_thread(self, client: GmailClient, messages: MagicMock) -> None:
        messages.send.return_value = _request({"id": "sent2"})
        email = ComposedEmail(document="doc", raw="cmF3")

        await client.send(email, thread_id="t9")

        messages.send.assert_called_once_with(userId="me", body={"raw": "cmF3", "threadId": "t9"})


class TestArchive:
    async def test_archive_removes_inbox_label(self, client: GmailClient, messages: MagicMock) -> None:
        messages.modify.return_value = _request({})

        await client.archive_message("m1")

        messages.modify.assert_called_once_with(
            userId="me", id="m1", body={"removeLabelIds": ["INBOX"]}
        )

    async def test_archive_many_counts_failures(
        self, client: GmailClient, messages: MagicMock
    ) -> None:
        def _modify(**kwargs: Any) -> MagicMock:
            if kwargs["id"] == "bad":
                return _request(error=_http_error(400))
            return _request({})

        messages.modify.side_effect = _modify

        result = await client.archive_messages(["m1", "bad", "m2"])

        assert result.success_count == 2
        assert result.failed_count == 1
        assert messages.modify.call_count == 3

    async def test_archive_many_empty(self, client: GmailClient, messages: MagicMock) -> None:
        result = await client.archive_messages([])
        assert (result.success_count, result.failed_count) == (0, 0)
        messages.modify.assert_not_called()
