# =============================================================================
# IMAP Exceptions
# =============================================================================
# Exception taxonomy shared by every layer of the IMAP engine.
#
# Callers branch on the outer category (ConnectionFailedError, ProtocolError,
# IMAPTimeoutError, ...) and inspect __cause__ for the root failure. Low-level
# transport and parse failures are chained with `raise ... from e` as they
# cross into the session layer.
#
# The IDLE loop relies on three distinct read outcomes:
#   - EmptyResponseError:    read timed out, socket still open
#   - ConnectionClosedError: peer closed or reset the socket
#   - ProtocolError:         anything the server said that we can't accept
# =============================================================================


class IMAPError(Exception):
    """Base exception for IMAP operations."""
    pass


class ConnectionFailedError(IMAPError):
    """Raised when a usable session could not be established.

    Covers DNS, socket, TLS handshake, proxy tunnel and authentication
    failures. The originating exception is always available as __cause__.
    """
    pass


class ProtocolNotSupportedError(IMAPError):
    """Raised when the configured protocol variant has no backend."""
    pass


class AuthFailedError(IMAPError):
    """Raised when the server rejects the supplied credentials."""
    pass


class ProtocolError(IMAPError):
    """Raised on malformed or unexpected response framing."""
    pass


class CommandFailedError(ProtocolError):
    """
    Raised when a command completes with a NO or BAD status.

    Attributes:
        command: The command verb that failed (e.g. "SELECT").
        status: Completion status returned by the server ("NO" or "BAD").
        text: Human-readable text following the status.
    """

    def __init__(self, command: str, status: str, text: str) -> None:
        super().__init__(f"{command} failed: {status} {text}".rstrip())
        self.command = command
        self.status = status
        self.text = text


class IMAPTimeoutError(IMAPError):
    """Raised when no terminal response arrives within the configured window."""
    pass


class EmptyResponseError(IMAPTimeoutError):
    """Raised when a read times out while the socket is still open."""
    pass


class ConnectionClosedError(IMAPError):
    """Raised when the server closed or reset the connection."""
    pass


class CapabilityNotSupportedError(IMAPError):
    """Raised when a required server extension (e.g. IDLE) is missing."""
    pass


class FolderFetchingError(IMAPError):
    """Raised when folders can't be listed, resolved or selected."""
    pass


class MessageNotFoundError(IMAPError):
    """Raised when a FETCH for a specific message returns nothing."""
    pass
