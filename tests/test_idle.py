# =============================================================================
# Tests for the IDLE monitor
# =============================================================================
# Lines pushed through `server.pushes` are what the server sends while the
# client idles. Once the script runs dry the fake raises ScriptExhausted,
# which ends the loop the same way any non-IMAP error would.
# =============================================================================

import logging
import threading

import pytest

from imapwire.imap import IdleMonitor
from imapwire.imap.errors import (
    CapabilityNotSupportedError,
    ConnectionClosedError,
    EmptyResponseError,
    ProtocolError,
)
from imapwire.imap.idle import IDLE_TIMEOUT

from fakes import FakeServer, ScriptExhausted, make_message


def new_mail(uid=103, subject="Third"):
    return lambda server: server.deliver("INBOX", make_message(uid, subject))


def command_names(transport):
    names = []
    for line in transport.received:
        if line == "DONE":
            names.append("DONE")
        elif line:
            names.append(line.split(" ")[1])
    return names


@pytest.fixture
def monitor(connected):
    return IdleMonitor(connected)


class TestNewMessage:

    def test_event_for_pushed_message(self, server, listener, connected, monitor):
        seen = []
        server.pushes.append(new_mail())

        stream = monitor.events("INBOX", timeout=30, callback=seen.append)
        event = next(stream)

        assert event.folder == "INBOX"
        assert event.msgn == 3
        assert event.message.uid == 103
        assert event.message.subject == "Third"
        assert [m.uid for m in seen] == [103]
        assert listener.events == [("new_message", 103)]
        assert connected.active_folder == "INBOX"

        # IDLE resumes on the next iteration; the script is empty by then
        with pytest.raises(ScriptExhausted):
            next(stream)

        assert command_names(server.transports[0]) == [
            "LOGIN", "CAPABILITY",
            "SELECT", "IDLE",
            "DONE", "SELECT", "FETCH",
            "IDLE", "DONE",
        ]

    def test_never_two_idles_outstanding(self, server, monitor):
        server.pushes.extend([new_mail(103), "* OK Still here", new_mail(104, "Fourth")])

        stream = monitor.events("INBOX", timeout=30)
        events = [next(stream), next(stream)]
        with pytest.raises(ScriptExhausted):
            next(stream)

        assert [e.msgn for e in events] == [3, 4]
        idle = False
        for name in command_names(server.transports[0]):
            if name == "IDLE":
                assert not idle
                idle = True
            elif name == "DONE":
                assert idle
                idle = False
            else:
                assert not idle, f"{name} sent while idling"
        assert not idle

    def test_message_numbers_follow_account_mode(self, server, connected, monitor):
        connected.account.sequence = "uid"
        server.pushes.append(new_mail(200, "Later"))

        event = next(monitor.events("INBOX", timeout=30))

        assert event.msgn == 3
        assert event.message.number == 200

    def test_folder_idle_events(self, server, connected):
        server.pushes.append(new_mail())
        inbox = connected.get_folder("INBOX")

        event = next(inbox.idle_events(timeout=30))

        assert event.message.uid == 103


class TestPreconditions:

    def test_missing_capability(self, account):
        from imapwire.imap import IMAPClient

        server = FakeServer(capabilities=["IMAP4rev1"])
        server.add_folder("INBOX")
        client = IMAPClient(account, transport_factory=server.transport_factory)
        client.connect()
        sent = list(server.commands)

        with pytest.raises(CapabilityNotSupportedError):
            IdleMonitor(client).events("INBOX", timeout=30)

        assert server.commands == sent
        client.disconnect()

    def test_same_timeout_keeps_session(self, server, monitor):
        monitor.events("INBOX", timeout=30)
        assert server.connections == 1

    def test_new_timeout_reconnects(self, server, monitor):
        monitor.events("INBOX", timeout=120)

        assert server.connections == 2
        assert server.transports[-1].timeout == 120

    def test_long_timeout_warns(self, monitor, caplog):
        with caplog.at_level(logging.WARNING, logger="imapwire.imap.idle"):
            monitor.events("INBOX", timeout=IDLE_TIMEOUT + 60)

        assert any("exceeds" in r.getMessage() for r in caplog.records)

    def test_nothing_sent_before_iteration(self, server, monitor):
        monitor.events("INBOX", timeout=30)
        assert "SELECT" not in server.commands


class TestRecovery:

    def test_timeout_refreshes_idle(self, server, monitor):
        server.pushes.extend([EmptyResponseError("empty response after 30s"), new_mail()])

        event = next(monitor.events("INBOX", timeout=30))

        assert event.msgn == 3
        assert server.connections == 1
        assert command_names(server.transports[0])[3:7] == ["IDLE", "DONE", "IDLE", "DONE"]

    def test_dropped_connection_reconnects_once(self, server, listener, monitor):
        server.pushes.extend([ConnectionClosedError("connection reset by peer"), new_mail()])

        event = next(monitor.events("INBOX", timeout=30))

        assert event.message.uid == 103
        assert server.connections == 2
        assert command_names(server.transports[1]) == [
            "LOGIN", "CAPABILITY", "SELECT", "IDLE",
            "DONE", "SELECT", "FETCH",
        ]
        assert listener.events == [("new_message", 103)]

    def test_refresh_on_dead_socket_reconnects(self, server, monitor):
        def broken_pipe(server):
            def write(data):
                raise ConnectionClosedError("connection closed while writing: broken pipe")
            server.transports[0].write = write

        server.pushes.extend([broken_pipe, EmptyResponseError("empty response after 30s"), new_mail()])

        event = next(monitor.events("INBOX", timeout=30))

        assert event.msgn == 3
        assert server.connections == 2
        assert command_names(server.transports[1]) == [
            "LOGIN", "CAPABILITY", "SELECT", "IDLE",
            "DONE", "SELECT", "FETCH",
        ]

    def test_messages_announced_together(self, server, listener, monitor):
        def two_messages(server):
            first = server.deliver("INBOX", make_message(103, "Third"))
            second = server.deliver("INBOX", make_message(104, "Fourth"))
            return f"{first}\r\n{second}"

        server.pushes.append(two_messages)

        stream = monitor.events("INBOX", timeout=30)
        events = [next(stream), next(stream)]

        assert [e.msgn for e in events] == [3, 4]
        assert [e.message.uid for e in events] == [103, 104]
        assert listener.events == [("new_message", 103), ("new_message", 104)]
        assert server.connections == 1

        with pytest.raises(ScriptExhausted):
            next(stream)

    def test_held_lines_dropped_when_stream_closes(self, server, connected, monitor):
        def two_messages(server):
            first = server.deliver("INBOX", make_message(103, "Third"))
            second = server.deliver("INBOX", make_message(104, "Fourth"))
            return f"{first}\r\n{second}"

        server.pushes.append(two_messages)
        stream = monitor.events("INBOX", timeout=30)
        next(stream)

        stream.close()

        assert connected.connection.discard_backlog() == []

    def test_chatter_resyncs(self, server, monitor):
        server.pushes.extend(["* 2 RECENT", new_mail()])

        next(monitor.events("INBOX", timeout=30))

        assert server.count("IDLE") == 2

    def test_keepalive_is_ignored(self, server, monitor):
        server.pushes.extend(["* OK Still here", new_mail()])

        next(monitor.events("INBOX", timeout=30))

        assert server.count("IDLE") == 1

    def test_expunge_invalidates_cache(self, server, connected, monitor):
        epoch = connected.uid_cache.epoch("INBOX")
        server.pushes.append("* 1 EXPUNGE")

        with pytest.raises(ScriptExhausted):
            next(monitor.events("INBOX", timeout=30))

        # One bump for the initial SELECT, one for the EXPUNGE
        assert connected.uid_cache.epoch("INBOX") == epoch + 2
        assert server.count("IDLE") == 2

    def test_other_errors_propagate_after_done(self, server, monitor):
        server.pushes.append(ProtocolError("garbage on the wire"))

        with pytest.raises(ProtocolError):
            next(monitor.events("INBOX", timeout=30))

        assert server.transports[0].received[-1] == "DONE"
        assert server.connections == 1


class TestCancel:

    def test_cancel_from_callback(self, server, monitor):
        stop = threading.Event()
        server.pushes.extend([new_mail(103), new_mail(104)])

        monitor.run("INBOX", callback=lambda message: stop.set(), timeout=30, cancel=stop)

        assert server.count("IDLE") == 1
        assert len(server.pushes) == 1

    def test_cancelled_before_start(self, server, monitor):
        stop = threading.Event()
        stop.set()

        monitor.run("INBOX", callback=lambda message: None, timeout=30, cancel=stop)

        assert server.count("IDLE") == 1
        assert server.transports[0].received[-1] == "DONE"

    def test_closing_the_stream_leaves_session_usable(self, server, connected, monitor):
        server.pushes.append(new_mail())
        stream = monitor.events("INBOX", timeout=30)
        next(stream)

        stream.close()

        assert connected.folder_status("INBOX")["MESSAGES"] == 3
