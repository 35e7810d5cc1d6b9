# =============================================================================
# Command Channel
# =============================================================================
# Tagged request/response correlation on top of a TransportSession.
#
# Every command gets a fresh tag ("A1", "A2", ...). We write
# "<tag> <command>\r\n" and then read lines in stream order:
#
#   * ...            untagged data -> collected + handed to the caller's parser
#   + ...            continuation  -> next literal chunk, or caller's handler
#   <tag> OK|NO|BAD  completion    -> stop reading
#
# Server literals ("{N}\r\n" followed by N raw bytes) are folded back into
# the logical line they belong to, so parsers always see whole responses.
#
# IDLE is special: the command stays open until we send DONE, and in between
# the caller pulls lines one at a time with next_line().
# =============================================================================

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from imapwire.imap.errors import (
    CommandFailedError,
    ConnectionClosedError,
    EmptyResponseError,
    IMAPTimeoutError,
    ProtocolError,
)
from imapwire.imap.parser import tokenize

if TYPE_CHECKING:
    from imapwire.imap.transport import TransportSession

logger = logging.getLogger(__name__)

# Wire trace goes to its own logger so it can be routed separately
wire_logger = logging.getLogger("imapwire.imap.wire")

# A line that announces a literal ends with "{N}"
_LITERAL_AT_END = re.compile(rb"\{(\d+)\}$")

# [CAPABILITY ...] response code (greeting or tagged OK)
_CAPABILITY_CODE = re.compile(r"\[CAPABILITY ([^\]]*)\]", re.IGNORECASE)

COMPLETION_STATUSES = ("OK", "NO", "BAD")


def quote(value: str) -> str:
    """Render ``value`` as an IMAP quoted string."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class Literal:
    """A command argument sent as a synchronizing literal ({N} + payload)."""
    data: bytes


@dataclass
class ResponseLine:
    """
    One logical server line.

    Attributes:
        text: Line text without CRLF. Literal markers ("{N}") stay in place.
        literals: Literal payloads in the order their markers appear.
    """
    text: str
    literals: list[bytes] = field(default_factory=list)

    @property
    def is_untagged(self) -> bool:
        return self.text.startswith("*")

    @property
    def is_continuation(self) -> bool:
        return self.text.startswith("+")

    @property
    def data(self) -> str:
        """Text after the leading "* " or "+ "."""
        return self.text[2:] if len(self.text) > 1 else ""

    def tokens(self) -> list[Any]:
        """Tokenize the data part of this line."""
        return tokenize(self.data, self.literals)


@dataclass
class Response:
    """
    Result of a tagged command.

    Attributes:
        tag: Tag the command was sent with.
        status: Completion status (OK, NO or BAD).
        text: Text after the status, including any [CODE].
        untagged: Untagged lines received while waiting for completion.
    """
    tag: str
    status: str
    text: str
    untagged: list[ResponseLine] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "OK"


UntaggedHandler = Callable[[ResponseLine], None]
ContinuationHandler = Callable[[ResponseLine], bytes]


class CommandChannel:
    """
    Serializes commands and demultiplexes responses on one transport.

    Not thread-safe: one command is in flight at a time, and a tagged
    completion always ends the wait for the command that owns the tag.

    Usage:
        >>> channel = CommandChannel(transport)
        >>> channel.read_greeting()
        >>> response = channel.command("SELECT", quote("INBOX"))
        >>> response.status
        'OK'

    Attributes:
        transport: The owned TransportSession.
        debug: When True, every line sent and received is logged on the
               "imapwire.imap.wire" logger.
    """

    TAG_PREFIX = "A"

    def __init__(self, transport: "TransportSession", debug: bool = False) -> None:
        self.transport = transport
        self.debug = debug
        self._tag_counter = 0
        self._capabilities: set[str] | None = None
        self._idle_tag: str | None = None
        self._backlog: list[ResponseLine] = []

    @property
    def connected(self) -> bool:
        return self.transport.connected

    @property
    def idling(self) -> bool:
        """True while an IDLE command is outstanding."""
        return self._idle_tag is not None

    @property
    def last_tag(self) -> int:
        """Numeric part of the most recently issued tag (0 if none yet)."""
        return self._tag_counter

    def next_tag(self) -> str:
        """Generate the next tag. Tags never repeat on one channel."""
        self._tag_counter += 1
        return f"{self.TAG_PREFIX}{self._tag_counter}"

    # =========================================================================
    # Greeting and Capabilities
    # =========================================================================

    def read_greeting(self) -> ResponseLine:
        """
        Read the server greeting.

        Raises:
            ProtocolError: If the server refuses us (BYE) or says something
                           that isn't a greeting.
        """
        line = self._read_line_or_timeout("greeting")
        upper = line.text.upper()
        if not (upper.startswith("* OK") or upper.startswith("* PREAUTH")):
            raise ProtocolError(f"Unexpected server greeting: {line.text}")
        self._absorb_capability_code(line.text)
        return line

    def capabilities(self, refresh: bool = False) -> set[str]:
        """
        Return the server capability set (upper-cased), cached per channel.

        Args:
            refresh: Ignore the cache and ask the server again.
        """
        if self._capabilities is None or refresh:
            response = self.command("CAPABILITY")
            found: set[str] = set()
            for line in response.untagged:
                parts = line.data.split()
                if parts and parts[0].upper() == "CAPABILITY":
                    found.update(p.upper() for p in parts[1:])
            self._capabilities = found
            logger.debug(f"Server capabilities: {sorted(found)}")
        return set(self._capabilities)

    def invalidate_capabilities(self) -> None:
        """Forget cached capabilities (they change after STARTTLS/login)."""
        self._capabilities = None

    def _absorb_capability_code(self, text: str) -> None:
        match = _CAPABILITY_CODE.search(text)
        if match:
            self._capabilities = {c.upper() for c in match.group(1).split()}

    # =========================================================================
    # Commands
    # =========================================================================

    def command(
        self,
        name: str,
        *args: str | Literal | list[str],
        on_untagged: UntaggedHandler | None = None,
        on_continuation: ContinuationHandler | None = None,
        check: bool = True,
        sensitive: bool = False,
    ) -> Response:
        """
        Send a command and wait for its tagged completion.

        Args:
            name: Command verb, possibly multi-word ("UID FETCH").
            *args: Pre-rendered arguments, Literal payloads, or lists of
                   pre-rendered items sent as a parenthesized list.
            on_untagged: Called with every untagged line while waiting.
            on_continuation: Produces the reply to a "+" prompt that isn't
                             part of a literal (SASL exchanges).
            check: Raise CommandFailedError on NO/BAD.
            sensitive: Mask arguments in the debug trace.

        Returns:
            The completed Response.

        Raises:
            CommandFailedError: NO/BAD completion and ``check`` is set.
            ProtocolError: Malformed or mismatched response framing.
            IMAPTimeoutError: No completion within the transport timeout.
            ConnectionClosedError: The server went away.
        """
        if self._idle_tag is not None:
            raise ProtocolError(f"Cannot send {name} while IDLE is in progress")

        tag = self.next_tag()
        response = Response(tag=tag, status="", text="")

        line = f"{tag} {name}"
        for arg in args:
            if isinstance(arg, Literal):
                self._write(f"{line} {{{len(arg.data)}}}\r\n".encode("utf-8"), sensitive)
                self._await_continuation(tag, name, response, on_untagged)
                self._write_literal(arg.data)
                line = ""
            elif isinstance(arg, (list, tuple)):
                line = f"{line} (" + " ".join(arg) + ")"
            else:
                line = f"{line} {arg}"
        self._write(f"{line}\r\n".encode("utf-8"), sensitive)

        while True:
            received = self._read_line_or_timeout(name)
            if received.is_untagged:
                self._dispatch(received, response, on_untagged)
            elif received.is_continuation:
                if on_continuation is None:
                    raise ProtocolError(f"Unexpected continuation during {name}: {received.text}")
                self._write(on_continuation(received) + b"\r\n", sensitive)
            else:
                status, text = self._completion(received, tag)
                response.status = status
                response.text = text
                break

        if response.ok:
            self._absorb_capability_code(response.text)
        elif check:
            raise CommandFailedError(name, response.status, response.text)

        return response

    def _await_continuation(
        self,
        tag: str,
        name: str,
        response: Response,
        on_untagged: UntaggedHandler | None,
    ) -> None:
        """Wait for the "+" that allows a literal payload to be sent."""
        while True:
            received = self._read_line_or_timeout(name)
            if received.is_continuation:
                return
            if received.is_untagged:
                self._dispatch(received, response, on_untagged)
                continue
            status, text = self._completion(received, tag)
            raise CommandFailedError(name, status, text or "literal rejected")

    def _dispatch(
        self,
        line: ResponseLine,
        response: Response,
        on_untagged: UntaggedHandler | None,
    ) -> None:
        response.untagged.append(line)
        if on_untagged is not None:
            on_untagged(line)

    def _completion(self, line: ResponseLine, tag: str) -> tuple[str, str]:
        """Split a tagged completion line, validating tag and status."""
        parts = line.text.split(" ", 2)
        if len(parts) < 2:
            raise ProtocolError(f"Malformed response line: {line.text!r}")

        if parts[0] != tag:
            raise ProtocolError(f"Unexpected tag {parts[0]!r} (waiting for {tag!r}): {line.text}")

        status = parts[1].upper()
        if status not in COMPLETION_STATUSES:
            raise ProtocolError(f"Unknown completion status {parts[1]!r}: {line.text}")

        return status, parts[2] if len(parts) > 2 else ""

    # =========================================================================
    # Session Commands
    # =========================================================================

    def noop(self) -> Response:
        return self.command("NOOP")

    def logout(self) -> Response:
        """Send LOGOUT. The server answers with BYE and closes."""
        return self.command("LOGOUT", check=False)

    # =========================================================================
    # IDLE
    # =========================================================================

    def idle(self) -> str:
        """
        Enter IDLE and wait for the server's continuation.

        Returns:
            Tag of the IDLE command.

        Raises:
            ProtocolError: If an IDLE is already outstanding.
            CommandFailedError: If the server rejects IDLE.
        """
        if self._idle_tag is not None:
            raise ProtocolError("IDLE already in progress; send DONE first")

        tag = self.next_tag()
        self._write(f"{tag} IDLE\r\n".encode("utf-8"))

        while True:
            received = self._read_line_or_timeout("IDLE")
            if received.is_continuation:
                self._idle_tag = tag
                return tag
            if received.is_untagged:
                # Arrived before the continuation; replay it from next_line()
                self._backlog.append(received)
                continue
            status, text = self._completion(received, tag)
            raise CommandFailedError("IDLE", status, text)

    def next_line(self) -> ResponseLine:
        """
        Read the next line while idling.

        Raises:
            EmptyResponseError: Nothing arrived within the timeout.
            ConnectionClosedError: The server closed the connection.
        """
        if self._backlog:
            return self._backlog.pop(0)
        return self._read_response_line()

    def discard_backlog(self) -> list[ResponseLine]:
        """Drop held IDLE lines, returning them."""
        held, self._backlog = self._backlog, []
        return held

    def done(self) -> bool:
        """
        Terminate an outstanding IDLE.

        Untagged lines that arrive before the completion are kept and
        replayed by next_line() once IDLE is re-entered.

        Returns:
            False if no IDLE was outstanding, True once the server confirmed.

        Raises:
            CommandFailedError: If the server completes IDLE with NO/BAD.
        """
        if self._idle_tag is None:
            return False

        tag, self._idle_tag = self._idle_tag, None
        self._write(b"DONE\r\n")

        while True:
            received = self._read_line_or_timeout("DONE")
            if received.is_untagged:
                logger.debug(f"Holding untagged line after DONE: {received.text}")
                self._backlog.append(received)
                continue
            if received.is_continuation:
                continue
            status, text = self._completion(received, tag)
            if status != "OK":
                raise CommandFailedError("IDLE", status, text)
            return True

    # =========================================================================
    # Low-level I/O
    # =========================================================================

    def _write(self, data: bytes, sensitive: bool = False) -> None:
        if self.debug:
            shown = data
            if sensitive:
                shown = b" ".join(data.split(b" ")[:2]) + b" ***\r\n"
            wire_logger.debug(f"C: {shown!r}")
        self.transport.write(data)

    def _write_literal(self, data: bytes) -> None:
        if self.debug:
            wire_logger.debug(f"C: <literal {len(data)} bytes>")
        self.transport.write(data)

    def _read_line_or_timeout(self, waiting_for: str) -> ResponseLine:
        """Read a response line, turning a read timeout into IMAPTimeoutError."""
        try:
            return self._read_response_line()
        except EmptyResponseError as e:
            raise IMAPTimeoutError(
                f"No response to {waiting_for} within {self.transport.timeout}s"
            ) from e

    def _read_response_line(self) -> ResponseLine:
        """Read one logical line, pulling in any literals it announces."""
        parts: list[bytes] = []
        literals: list[bytes] = []

        raw = self.transport.read_line()
        while True:
            stripped = raw.rstrip(b"\r\n")
            if self.debug:
                wire_logger.debug(f"S: {stripped!r}")
            parts.append(stripped)

            match = _LITERAL_AT_END.search(stripped)
            if not match:
                break

            try:
                payload = self.transport.read_exact(int(match.group(1)))
                if self.debug:
                    wire_logger.debug(f"S: <literal {len(payload)} bytes>")
                literals.append(payload)
                raw = self.transport.read_line()
            except EmptyResponseError as e:
                # Half a line has been consumed; the stream can't be resynced
                self.transport.close()
                raise ConnectionClosedError(f"timed out inside a literal: {e}") from e

        text = b"".join(parts).decode("utf-8", errors="replace")
        if not text:
            raise ProtocolError("Empty line in response stream")
        return ResponseLine(text=text, literals=literals)
