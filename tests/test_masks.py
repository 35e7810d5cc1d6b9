# =============================================================================
# Tests for message masks
# =============================================================================

import pytest

from imapwire import MessageMask, register_message_mask
from imapwire.core import Account, ConfigError, MessageOverview
from imapwire.imap import IMAPClient
from imapwire.masks import MaskNotFoundError, resolve_message_mask


class SubjectOnly(MessageMask):
    def to_dict(self):
        return {"subject": self.message.subject}


@pytest.fixture
def message():
    return MessageOverview(
        msgn=1,
        uid=101,
        folder="INBOX",
        flags=["\\Seen"],
        size=120,
        header=b"From: a@example.com\r\nSubject: Hi\r\nDate: Sat, 17 Oct 2026 10:00:00 +0000\r\n\r\n",
    )


def test_default_mask(message):
    data = message.mask().to_dict()

    assert data["subject"] == "Hi"
    assert data["from"] == ["a@example.com"]
    assert data["date"] == "2026-10-17T10:00:00+00:00"
    assert data["flags"] == ["\\Seen"]
    assert data["number"] == 1


def test_mask_falls_through_to_message(message):
    assert message.mask().uid == 101


def test_unknown_mask():
    with pytest.raises(MaskNotFoundError):
        resolve_message_mask("nope")


def test_unknown_mask_fails_at_client_construction():
    account = Account(name="test", host="imap.example.com", message_mask="nope")
    with pytest.raises(ConfigError):
        IMAPClient(account)


def test_registered_mask_reaches_messages(server):
    register_message_mask("subject-only", SubjectOnly)
    account = Account(
        name="test",
        host="imap.example.com",
        username="user@example.com",
        password="secret",
        message_mask="subject-only",
    )
    client = IMAPClient(account, transport_factory=server.transport_factory)

    client.open_folder("INBOX")
    first = client.overview()[1]

    assert first.mask().to_dict() == {"subject": "First"}
    client.disconnect()
