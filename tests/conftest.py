# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures for the imapwire test suite. Sessions run against the
# scripted server in tests/fakes.py; nothing touches the network.
# =============================================================================

import tempfile
from pathlib import Path

import pytest

from imapwire.core import Account
from imapwire.imap import IMAPClient

from fakes import FakeServer, RecordingListener, make_message


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def server():
    """
    A fake server with this namespace:

        INBOX               (2 messages)
        INBOX/Sent
        Archive             (\\Noselect)
        Archive/2025
        Entw&APw-rfe        ("Entwürfe")
    """
    server = FakeServer()
    server.add_folder("INBOX", messages=[
        make_message(101, "First"),
        make_message(102, "Second", flags=["\\Seen"]),
    ])
    server.add_folder("INBOX/Sent")
    server.add_folder("Archive", attributes=["\\Noselect"])
    server.add_folder("Archive/2025")
    server.add_folder("Entw&APw-rfe")
    return server


@pytest.fixture
def account():
    """Create a sample Account for testing."""
    return Account(
        name="test",
        host="imap.example.com",
        port=993,
        encryption="ssl",
        username="user@example.com",
        password="secret",
        timeout=30,
    )


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def client(account, server, listener):
    """An IMAPClient wired to the fake server (not yet connected)."""
    client = IMAPClient(account, listener=listener, transport_factory=server.transport_factory)
    yield client
    client.disconnect()


@pytest.fixture
def connected(client):
    """A connected, authenticated IMAPClient."""
    return client.connect()
