# =============================================================================
# IDLE Monitor
# =============================================================================
# Push notifications for one folder via IMAP IDLE (RFC 2177).
#
# Key responsibilities:
#   - Keep an IDLE command outstanding on the selected folder
#   - Resolve every "* n EXISTS" into a message and hand it to the caller
#   - Refresh IDLE when the read timeout expires (keep-alive)
#   - Reconnect once when the server drops the connection
#
# Design notes:
#   - IDLE ties up the connection, so nothing else may run on the client
#     while events() is being iterated
#   - The loop is a generator; stop it with a cancel token (checked once per
#     iteration) or by closing the generator, never by closing the socket
#     from another thread
#   - RFC recommends refreshing IDLE every 29 minutes
# =============================================================================

import logging
import re
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from imapwire.imap.channel import CommandChannel, ResponseLine
from imapwire.imap.errors import (
    CapabilityNotSupportedError,
    ConnectionClosedError,
    EmptyResponseError,
    IMAPError,
)

if TYPE_CHECKING:
    from imapwire.core import MessageOverview
    from imapwire.imap.client import IMAPClient

logger = logging.getLogger(__name__)

# Longest keep-alive interval the RFC allows a client to rely on
IDLE_TIMEOUT = 29 * 60  # 29 minutes

_EXISTS = re.compile(r"\*\s+(\d+)\s+EXISTS", re.IGNORECASE)
_EXPUNGE = re.compile(r"\*\s+\d+\s+EXPUNGE", re.IGNORECASE)


@dataclass
class IdleEvent:
    """Emitted for every new message announced while idling."""
    folder: str
    msgn: int
    message: "MessageOverview"


MessageCallback = Callable[["MessageOverview"], None]


class IdleMonitor:
    """
    IDLE state machine bound to one IMAPClient.

    Usage:
        >>> monitor = IdleMonitor(client)
        >>> for event in monitor.events("INBOX", timeout=300):
        ...     print(event.message.subject)

    A second thread can stop the loop through a threading.Event:
        >>> stop = threading.Event()
        >>> monitor.run("INBOX", handle, cancel=stop)
    """

    def __init__(self, client: "IMAPClient") -> None:
        self.client = client

    def events(
        self,
        folder: str,
        timeout: float = 300,
        callback: MessageCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> Iterator[IdleEvent]:
        """
        Start idling on ``folder`` and stream new-message events.

        Preconditions are checked here, before the stream is returned, so a
        server without IDLE fails right away.

        Args:
            folder: Folder path to watch.
            timeout: Read timeout in seconds; each expiry refreshes IDLE.
                     Keep it at or below IDLE_TIMEOUT, and above the server's
                     own "still here" interval.
            callback: Called with each new message before its event is yielded.
            cancel: Stops the loop once set.

        Raises:
            CapabilityNotSupportedError: Server didn't advertise IDLE. No
                                         command has been sent.
        """
        client = self.client
        client.check_connection()

        if "IDLE" not in client.connection.capabilities():
            raise CapabilityNotSupportedError("IMAP server does not support IDLE")

        if timeout > IDLE_TIMEOUT:
            logger.warning(f"IDLE timeout {timeout}s exceeds the recommended {IDLE_TIMEOUT}s")

        if client.timeout != timeout:
            client.set_timeout(timeout)

        return self._loop(folder, callback, cancel)

    def run(
        self,
        folder: str,
        callback: MessageCallback,
        timeout: float = 300,
        cancel: threading.Event | None = None,
    ) -> None:
        """Block in IDLE, calling ``callback`` for every new message."""
        for _ in self.events(folder, timeout=timeout, callback=callback, cancel=cancel):
            pass

    # =========================================================================
    # Loop
    # =========================================================================

    def _loop(
        self,
        folder: str,
        callback: MessageCallback | None,
        cancel: threading.Event | None,
    ) -> Iterator[IdleEvent]:
        client = self.client
        client.open_folder(folder, force=True)
        client.connection.idle()
        logger.info(f"IDLE started on {folder}")

        refresh = False
        try:
            while not (cancel and cancel.is_set()):
                channel = client.connection
                try:
                    if refresh:
                        refresh = False
                        logger.debug(f"IDLE refresh on {folder}")
                        channel.done()
                        channel.idle()
                        continue

                    event = self._step(channel, folder, callback)

                except EmptyResponseError:
                    if not channel.connected:
                        raise
                    refresh = True
                    continue

                except ConnectionClosedError as e:
                    logger.warning(f"Connection closed during IDLE on {folder}, reconnecting: {e}")
                    client.reconnect()
                    client.open_folder(folder, force=True)
                    client.connection.idle()
                    continue

                if event is None:
                    continue

                yield event

                if cancel and cancel.is_set():
                    break
                client.connection.idle()

        finally:
            self._terminate()
            logger.info(f"IDLE stopped on {folder}")

    def _step(
        self,
        channel: CommandChannel,
        folder: str,
        callback: MessageCallback | None,
    ) -> IdleEvent | None:
        """
        Handle one line received while idling.

        Returns:
            An IdleEvent for a new message (the connection is left out of
            IDLE), otherwise None with IDLE still outstanding.
        """
        line = channel.next_line()

        match = _EXISTS.match(line.text)
        if match:
            return self._new_message(channel, folder, int(match.group(1)), callback)

        if _EXPUNGE.match(line.text):
            self.client.uid_cache.invalidate(folder)

        if not self._is_ok(line):
            logger.debug(f"Resyncing IDLE after: {line.text}")
            channel.done()
            channel.idle()

        return None

    def _new_message(
        self,
        channel: CommandChannel,
        folder: str,
        msgn: int,
        callback: MessageCallback | None,
    ) -> IdleEvent:
        client = self.client
        channel.done()

        # Mailbox state may have moved on since IDLE began
        client.uid_cache.invalidate(folder)
        client.open_folder(folder, force=True)

        message = client.get_message_by_msgn(msgn)
        message.set_sequence(client.account.sequence)
        logger.info(f"IDLE: new message {msgn} in {folder}")

        if callback is not None:
            callback(message)
        client.listener.new_message(message)

        return IdleEvent(folder=folder, msgn=msgn, message=message)

    @staticmethod
    def _is_ok(line: ResponseLine) -> bool:
        return line.is_untagged and line.data.upper().startswith("OK")

    def _terminate(self) -> None:
        """Send DONE if an IDLE is still outstanding, then drop held lines."""
        channel = self.client._channel
        if channel is None:
            return
        try:
            if channel.idling and channel.connected:
                channel.done()
        except IMAPError as e:
            logger.warning(f"Error terminating IDLE: {e}")
        finally:
            channel.discard_backlog()
