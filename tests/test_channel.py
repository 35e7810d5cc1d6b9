# =============================================================================
# Tests for CommandChannel (tagging, literals, IDLE framing)
# =============================================================================

import logging

import pytest

from imapwire.imap.channel import CommandChannel, Literal, quote
from imapwire.imap.errors import (
    CommandFailedError,
    ConnectionClosedError,
    EmptyResponseError,
    IMAPTimeoutError,
    ProtocolError,
)

from fakes import ScriptExhausted


@pytest.fixture
def transport(server):
    transport = server.transport_factory()
    transport.connect("imap.example.com", 993, "ssl")
    return transport


@pytest.fixture
def channel(transport):
    channel = CommandChannel(transport)
    channel.read_greeting()
    channel.command("LOGIN", quote("user@example.com"), quote("secret"))
    return channel


def tags_of(transport):
    return [line.split(" ", 1)[0] for line in transport.received if line and line != "DONE"]


class TestTagging:

    def test_tags_are_unique_and_increasing(self, channel, transport):
        channel.capabilities(refresh=True)
        channel.command("SELECT", quote("INBOX"))
        channel.idle()
        channel.done()
        channel.noop()

        numbers = [int(tag[1:]) for tag in tags_of(transport)]
        assert numbers == sorted(set(numbers))
        assert numbers[0] == 1
        assert channel.last_tag == numbers[-1]

    def test_tag_format(self, transport):
        channel = CommandChannel(transport)
        assert channel.next_tag() == "A1"
        assert channel.next_tag() == "A2"


class TestGreeting:

    def test_rejects_bye(self, server, transport):
        transport._out.clear()
        transport.send("* BYE Too many connections")
        with pytest.raises(ProtocolError):
            CommandChannel(transport).read_greeting()

    def test_capability_code_is_cached(self, server, transport):
        transport._out.clear()
        transport.send("* OK [CAPABILITY IMAP4rev1 IDLE] ready")
        channel = CommandChannel(transport)
        channel.read_greeting()

        assert channel.capabilities() == {"IMAP4REV1", "IDLE"}
        assert server.commands == []


class TestCommand:

    def test_untagged_lines_reach_handler(self, channel):
        seen = []
        response = channel.command("SELECT", quote("INBOX"), on_untagged=lambda line: seen.append(line.data))

        assert response.ok
        assert "2 EXISTS" in seen
        assert [line.data for line in response.untagged] == seen

    def test_no_raises_command_failed(self, channel):
        with pytest.raises(CommandFailedError) as excinfo:
            channel.command("SELECT", quote("Missing"))

        assert excinfo.value.status == "NO"
        assert excinfo.value.command == "SELECT"
        assert "NONEXISTENT" in excinfo.value.text

    def test_check_false_returns_failure(self, channel):
        response = channel.command("BOGUS", check=False)
        assert response.status == "BAD"
        assert not response.ok

    def test_literal_argument(self, server, channel, transport):
        payload = b"Subject: hi\r\n\r\nbody\r\n"
        channel.command("APPEND", quote("INBOX"), Literal(payload))

        assert server.appended[-1][3] == payload
        assert transport.received[-1].endswith("{%d}" % len(payload))

    def test_list_argument(self, channel, transport):
        channel.command("STATUS", quote("INBOX"), ["MESSAGES", "UNSEEN"])
        assert transport.received[-1] == 'A2 STATUS "INBOX" (MESSAGES UNSEEN)'

    def test_rejected_literal(self, server, channel, transport):
        server.refuse_literals = "[TOOBIG] Message too large"

        with pytest.raises(CommandFailedError) as excinfo:
            channel.command("APPEND", quote("INBOX"), Literal(b"x" * 10))

        assert "TOOBIG" in excinfo.value.text
        assert server.appended == []

    def test_server_literal_is_folded(self, channel):
        channel.command("SELECT", quote("INBOX"))
        response = channel.command("FETCH", "1", "(UID BODY.PEEK[HEADER])")

        line = response.untagged[0]
        assert line.literals and line.literals[0].startswith(b"From:")
        tokens = line.tokens()
        assert tokens[1] == "FETCH"
        assert tokens[2][-1] == line.literals[0]

    def test_wrong_tag_is_a_protocol_error(self, channel, transport):
        transport.send("A999 OK stray completion")
        with pytest.raises(ProtocolError):
            channel.noop()

    def test_unknown_status_is_a_protocol_error(self, channel, transport):
        tag = f"A{channel.last_tag + 1}"
        transport.write = lambda data: transport.send(f"{tag} MAYBE huh")
        with pytest.raises(ProtocolError):
            channel.noop()

    def test_unexpected_continuation(self, channel, transport):
        transport.write = lambda data: transport.send("+ go ahead")
        with pytest.raises(ProtocolError):
            channel.noop()

    def test_timeout_becomes_imap_timeout(self, channel, transport):
        def timed_out():
            raise EmptyResponseError("empty response after 30s")

        transport.write = lambda data: None
        transport.read_line = timed_out

        with pytest.raises(IMAPTimeoutError) as excinfo:
            channel.noop()
        assert not isinstance(excinfo.value, EmptyResponseError)
        assert isinstance(excinfo.value.__cause__, EmptyResponseError)

    def test_connection_closed_propagates(self, channel, transport):
        transport.close()
        with pytest.raises(ConnectionClosedError):
            channel.noop()


class TestIdle:

    def test_idle_and_done(self, channel, transport):
        channel.command("SELECT", quote("INBOX"))
        tag = channel.idle()

        assert channel.idling
        assert transport.received[-1] == f"{tag} IDLE"

        assert channel.done() is True
        assert not channel.idling
        assert transport.received[-1] == "DONE"

    def test_done_without_idle(self, channel):
        assert channel.done() is False

    def test_no_second_idle(self, channel):
        channel.idle()
        with pytest.raises(ProtocolError):
            channel.idle()

    def test_commands_refused_while_idling(self, channel):
        channel.idle()
        with pytest.raises(ProtocolError):
            channel.noop()

    def test_next_line_serves_pushes(self, server, channel):
        server.pushes.append("* 3 EXISTS")
        channel.idle()
        assert channel.next_line().data == "3 EXISTS"

    def test_done_holds_untagged_lines(self, server, channel, transport):
        server.pushes.append("* 3 EXISTS\r\n* 4 EXISTS")
        channel.idle()
        assert channel.next_line().data == "3 EXISTS"

        channel.done()
        channel.idle()

        assert channel.next_line().data == "4 EXISTS"
        assert not server.pushes

    def test_discard_backlog(self, server, channel):
        server.pushes.append("* 3 EXISTS\r\n* 4 EXISTS")
        channel.idle()
        channel.next_line()
        channel.done()

        assert [line.data for line in channel.discard_backlog()] == ["4 EXISTS"]
        assert channel.discard_backlog() == []

    def test_next_line_surfaces_structured_errors(self, server, channel):
        server.pushes.append(EmptyResponseError("empty response after 30s"))
        channel.idle()
        with pytest.raises(EmptyResponseError):
            channel.next_line()

    def test_timeout_inside_literal_closes(self, server, channel):
        server.pushes.extend(["* 1 FETCH (BODY[] {20}", EmptyResponseError("empty response after 30s")])
        channel.idle()

        with pytest.raises(ConnectionClosedError) as excinfo:
            channel.next_line()

        assert isinstance(excinfo.value.__cause__, EmptyResponseError)
        assert not channel.connected

    def test_script_exhausted_is_not_an_imap_error(self, channel):
        channel.idle()
        with pytest.raises(ScriptExhausted):
            channel.next_line()


def test_debug_trace_masks_credentials(transport, caplog):
    channel = CommandChannel(transport, debug=True)
    channel.read_greeting()

    with caplog.at_level(logging.DEBUG, logger="imapwire.imap.wire"):
        channel.command("LOGIN", quote("user@example.com"), quote("secret"), sensitive=True)

    trace = "\n".join(r.getMessage() for r in caplog.records if r.name == "imapwire.imap.wire")
    assert "LOGIN" in trace
    assert "secret" not in trace
    assert "S: b'A1 OK" in trace
