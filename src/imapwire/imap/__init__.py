# =============================================================================
# IMAP Module
# =============================================================================
# A synchronous IMAP4rev1 session engine, layered leaves first:
#   - TransportSession: socket, TLS (implicit or STARTTLS) and proxy tunnel
#   - CommandChannel: tagged commands, literals and response demultiplexing
#   - Authenticators: LOGIN and XOAUTH2
#   - FolderRegistry: LIST parsing and folder trees
#   - IMAPClient: connect/select/folder operations on top of all of the above
#   - IdleMonitor: IMAP IDLE push notifications as an event stream
#   - UidTranslationCache: sequence number <-> UID bookkeeping
# =============================================================================

from imapwire.imap.client import (
    ConnectionState,
    IMAPClient,
    ProtocolVariant,
    SessionState,
)
from imapwire.imap.errors import (
    AuthFailedError,
    CapabilityNotSupportedError,
    CommandFailedError,
    ConnectionClosedError,
    ConnectionFailedError,
    EmptyResponseError,
    FolderFetchingError,
    IMAPError,
    IMAPTimeoutError,
    MessageNotFoundError,
    ProtocolError,
    ProtocolNotSupportedError,
)
from imapwire.imap.events import SessionListener
from imapwire.imap.folders import FolderRegistry
from imapwire.imap.idle import IdleEvent, IdleMonitor
from imapwire.imap.uid_cache import UidTranslationCache

__all__ = [
    # Client
    "IMAPClient",
    "ConnectionState",
    "SessionState",
    "ProtocolVariant",
    "SessionListener",
    "FolderRegistry",
    "UidTranslationCache",
    # IDLE
    "IdleMonitor",
    "IdleEvent",
    # Errors
    "IMAPError",
    "ConnectionFailedError",
    "ProtocolNotSupportedError",
    "AuthFailedError",
    "ProtocolError",
    "CommandFailedError",
    "IMAPTimeoutError",
    "EmptyResponseError",
    "ConnectionClosedError",
    "CapabilityNotSupportedError",
    "FolderFetchingError",
    "MessageNotFoundError",
]
