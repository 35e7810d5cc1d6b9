# =============================================================================
# IMAP Client
# =============================================================================
# The session controller: drives TransportSession, CommandChannel and the
# authenticator to reach an authenticated session, then offers folder and
# message operations on top of it.
#
# Key responsibilities:
#   - Connection management (connect, disconnect, reconnect)
#   - Authentication (LOGIN or XOAUTH2, STARTTLS or implicit TLS)
#   - Folder selection with an "active folder" short-circuit
#   - Folder operations (list, create, rename, delete, subscribe)
#   - Quota, ID and capability queries
#   - Overview fetches and msgn <-> uid translation
#
# Design notes:
#   - Synchronous and not thread-safe: one session per thread
#   - Every operation calls check_connection() first, so the session is
#     (re)established lazily
#   - Anything that goes wrong while setting up a session surfaces as
#     ConnectionFailedError with the real failure chained as __cause__
# =============================================================================

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any

import keyring
import keyring.errors

from imapwire.core import Account, Folder, MessageOverview
from imapwire.imap.auth import authenticator_for
from imapwire.imap.channel import CommandChannel, Literal, Response, ResponseLine, quote
from imapwire.imap.errors import (
    AuthFailedError,
    CapabilityNotSupportedError,
    CommandFailedError,
    ConnectionFailedError,
    FolderFetchingError,
    IMAPError,
    MessageNotFoundError,
    ProtocolError,
    ProtocolNotSupportedError,
)
from imapwire.imap.events import SessionListener
from imapwire.imap.folders import FolderRegistry
from imapwire.imap.parser import as_text, pairs
from imapwire.imap.transport import TransportSession
from imapwire.imap.uid_cache import UidTranslationCache
from imapwire.imap.utf7 import ensure_encoded
from imapwire.masks import resolve_message_mask

# Set up logging for this module
logger = logging.getLogger(__name__)

# Protocol names served by the native engine
NATIVE_PROTOCOLS = ("imap", "imap4", "imap4rev1")

# FETCH items for a message overview
OVERVIEW_ITEMS = "(UID FLAGS RFC822.SIZE INTERNALDATE BODY.PEEK[HEADER])"

# Month names for INTERNALDATE; strftime("%b") would follow the locale
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class SessionState(Enum):
    """Where a session is in its lifecycle."""
    DISCONNECTED = auto()
    CONNECTED = auto()
    AUTHENTICATED = auto()
    SELECTED = auto()


class ProtocolVariant(Enum):
    """
    Protocol implementation behind a session, chosen once per client.

    NATIVE is this engine. LEGACY stands for a system-library backed client,
    which this package doesn't ship; connecting with it always fails.
    """
    NATIVE = "native"
    LEGACY = "legacy"

    @classmethod
    def for_scheme(cls, protocol: str) -> "ProtocolVariant":
        if (protocol or "imap").lower() in NATIVE_PROTOCOLS:
            return cls.NATIVE
        return cls.LEGACY


@dataclass
class ConnectionState:
    """
    Tracks the current state of an IMAP session.

    Attributes:
        phase: Lifecycle state.
        selected_folder: Active folder marker: the last successfully
                         selected folder, None after disconnect or a failed
                         selection.
        select_status: Status parsed from the last successful SELECT.
        capabilities: Server capabilities after authentication.
        uidvalidity: UIDVALIDITY of the selected folder.
    """
    phase: SessionState = SessionState.DISCONNECTED
    selected_folder: str | None = None
    select_status: dict[str, Any] = field(default_factory=dict)
    capabilities: set[str] = field(default_factory=set)
    uidvalidity: int | None = None


TransportFactory = Callable[..., TransportSession]


class IMAPClient:
    """
    Synchronous IMAP session.

    Usage:
        >>> client = IMAPClient(account)
        >>> client.connect()
        >>> folders = client.get_folders()
        >>> client.open_folder("INBOX")
        >>> messages = client.overview("1:10")
        >>> client.disconnect()

    Or as a context manager:
        >>> with IMAPClient(account) as client:
        ...     client.get_quota_root()

    Attributes:
        account: Session configuration.
        listener: Receives folder and new-message notifications.
        state: Current session state.
        timeout: Socket timeout applied to new transports.
        folders: Folder listing and lookup.
        uid_cache: msgn -> uid bookkeeping per folder.
    """

    def __init__(
        self,
        account: Account,
        listener: SessionListener | None = None,
        transport_factory: TransportFactory = TransportSession,
    ) -> None:
        """
        Initialize the client. No network activity happens here.

        Raises:
            ConfigError: Unknown authentication method or message mask.
        """
        self.account = account
        self.listener = listener or SessionListener()
        self.state = ConnectionState()
        self.timeout = account.timeout
        self.variant = ProtocolVariant.for_scheme(account.protocol)
        self.authenticator = authenticator_for(account.authentication)
        self.message_mask = resolve_message_mask(account.message_mask)
        self.uid_cache = UidTranslationCache(enabled=account.uid_cache)
        self.folders = FolderRegistry(self)
        self._transport_factory = transport_factory
        self._channel: CommandChannel | None = None

    def __enter__(self) -> "IMAPClient":
        return self.connect()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    @property
    def is_connected(self) -> bool:
        """True while a transport is open and authenticated."""
        return self._channel is not None and self._channel.connected

    @property
    def connection(self) -> CommandChannel:
        """The live command channel, connecting first if needed."""
        self.check_connection()
        return self._channel

    @property
    def active_folder(self) -> str | None:
        return self.state.selected_folder

    # =========================================================================
    # Connection Management
    # =========================================================================

    def connect(self) -> "IMAPClient":
        """
        Establish and authenticate a session. Any existing session is closed
        first.

        Returns:
            self, for chaining.

        Raises:
            ConnectionFailedError: If the session can't be established. The
                                   originating error is chained as __cause__.
        """
        self.disconnect()

        if self.variant is ProtocolVariant.LEGACY:
            raise ConnectionFailedError("connection setup failed") from ProtocolNotSupportedError(
                f"{self.account.protocol} is an unsupported protocol"
            )

        account = self.account
        logger.info(f"Connecting to {account.host}:{account.port} ({account.encryption})")

        transport = self._transport_factory(
            timeout=self.timeout,
            validate_cert=account.validate_cert,
            proxy=account.proxy,
        )
        channel = CommandChannel(transport, debug=account.debug)

        try:
            transport.connect(account.host, account.port, account.encryption)
            greeting = channel.read_greeting()
            self.state.phase = SessionState.CONNECTED

            if account.encryption == "starttls":
                self._starttls(channel, transport)

            if not greeting.text.upper().startswith("* PREAUTH"):
                self._authenticate(channel)

            self.state.capabilities = channel.capabilities(refresh=True)

        except ConnectionFailedError:
            transport.close()
            self.state = ConnectionState()
            raise
        except (IMAPError, OSError) as e:
            transport.close()
            self.state = ConnectionState()
            raise ConnectionFailedError("connection setup failed") from e

        self._channel = channel
        self.state.phase = SessionState.AUTHENTICATED
        logger.info(f"Successfully connected to {account.host}")
        return self

    def _starttls(self, channel: CommandChannel, transport: TransportSession) -> None:
        """Upgrade the plaintext connection via STARTTLS."""
        if "STARTTLS" not in channel.capabilities():
            raise ConnectionFailedError("connection setup failed") from CapabilityNotSupportedError(
                "Server does not support STARTTLS"
            )

        logger.debug("Upgrading to TLS via STARTTLS")
        channel.command("STARTTLS")
        transport.starttls(self.account.host)
        channel.invalidate_capabilities()

    def _authenticate(self, channel: CommandChannel) -> None:
        """
        Authenticate with the configured method.

        The secret comes from the account, or from the system keyring when
        the account has none.

        Raises:
            ConnectionFailedError: Wrapping AuthFailedError.
        """
        account = self.account
        try:
            secret = account.password or self._keyring_secret()
            if not secret:
                raise AuthFailedError(
                    f"No password found for {account.username}. "
                    f"Set it with: keyring set {account.keyring_service} {account.username}"
                )
            self.authenticator.authenticate(channel, account.username, secret)
        except AuthFailedError as e:
            raise ConnectionFailedError("connection setup failed") from e

        channel.invalidate_capabilities()
        logger.debug("Authentication successful")

    def _keyring_secret(self) -> str | None:
        try:
            return keyring.get_password(self.account.keyring_service, self.account.username)
        except keyring.errors.KeyringError as e:
            raise AuthFailedError(f"Keyring lookup failed: {e}") from e

    def disconnect(self) -> "IMAPClient":
        """
        Log out and close the transport. Never raises; safe to call on a
        disconnected client.
        """
        channel, self._channel = self._channel, None

        if channel is not None:
            if channel.connected:
                try:
                    if channel.idling:
                        channel.done()
                    logger.debug("Sending LOGOUT")
                    channel.logout()
                except (IMAPError, OSError) as e:
                    logger.warning(f"Error during logout: {e}")
                finally:
                    channel.transport.close()
            else:
                channel.transport.close()

        self.state = ConnectionState()
        return self

    def reconnect(self) -> "IMAPClient":
        """Disconnect, then connect again. Clears the active folder."""
        logger.info(f"Reconnecting to {self.account.host}")
        self.disconnect()
        return self.connect()

    def check_connection(self) -> None:
        """Connect if there's no live session."""
        if not self.is_connected:
            self.connect()

    def set_timeout(self, timeout: float) -> None:
        """
        Change the socket timeout. A live session is reconnected so the new
        value applies to its transport.
        """
        self.timeout = timeout
        if self.is_connected:
            self.reconnect()

    def capabilities(self) -> set[str]:
        return self.connection.capabilities()

    def has_capability(self, name: str) -> bool:
        return name.upper() in self.capabilities()

    # =========================================================================
    # Folder Selection
    # =========================================================================

    def open_folder(self, path: str, force: bool = False) -> dict[str, Any]:
        """
        Select a folder for subsequent operations.

        Args:
            path: Folder path.
            force: Select even if this folder is already the active one.

        Returns:
            Dictionary with folder status (EXISTS, RECENT, UIDVALIDITY, ...).

        Raises:
            FolderFetchingError: If the server refuses the selection.
        """
        if not force and self.state.selected_folder == path and self.is_connected:
            return self.state.select_status

        channel = self.connection
        self.state.selected_folder = None
        self.state.phase = SessionState.AUTHENTICATED
        self.uid_cache.invalidate(path)

        logger.debug(f"Selecting folder: {path}")
        try:
            response = channel.command("SELECT", quote(ensure_encoded(path)))
        except CommandFailedError as e:
            raise FolderFetchingError(f"Failed to select folder '{path}': {e.text}") from e

        status = self._parse_select_response(response)
        self.state.selected_folder = path
        self.state.select_status = status
        self.state.uidvalidity = status.get("UIDVALIDITY")
        self.state.phase = SessionState.SELECTED

        logger.debug(f"Selected folder: {path}, {status}")
        return status

    def check_folder(self, path: str) -> dict[str, Any]:
        """
        EXAMINE a folder (read-only). Useful as an existence check.

        EXAMINE replaces the server-side selection, so the active folder
        marker is cleared and the next open_folder() selects again.
        """
        channel = self.connection
        self.state.selected_folder = None
        self.state.phase = SessionState.AUTHENTICATED
        try:
            response = channel.command("EXAMINE", quote(ensure_encoded(path)))
        except CommandFailedError as e:
            raise FolderFetchingError(f"Failed to examine folder '{path}': {e.text}") from e
        return self._parse_select_response(response)

    def _parse_select_response(self, response: Response) -> dict[str, Any]:
        """Parse SELECT/EXAMINE response into a status dictionary."""
        status: dict[str, Any] = {}

        for line in response.untagged:
            text = line.data

            match = re.match(r"(\d+)\s+(EXISTS|RECENT)", text, re.IGNORECASE)
            if match:
                status[match.group(2).upper()] = int(match.group(1))
                continue

            match = re.search(r"\[(UIDVALIDITY|UIDNEXT|UNSEEN)\s+(\d+)\]", text, re.IGNORECASE)
            if match:
                status[match.group(1).upper()] = int(match.group(2))
                continue

            match = re.match(r"FLAGS\s+\(([^)]*)\)", text, re.IGNORECASE)
            if match:
                status["FLAGS"] = match.group(1).split()

        status["READ_ONLY"] = "[READ-ONLY]" in response.text.upper()
        return status

    def folder_status(self, path: str) -> dict[str, int]:
        """
        Get status of a folder without selecting it.

        Returns:
            Dictionary with MESSAGES, RECENT, UNSEEN, UIDNEXT, UIDVALIDITY.
        """
        status: dict[str, int] = {}

        def collect(line: ResponseLine) -> None:
            tokens = line.tokens()
            if len(tokens) >= 3 and str(tokens[0]).upper() == "STATUS":
                for key, value in pairs(tokens[2]).items():
                    status[key] = int(value)

        self.connection.command(
            "STATUS",
            quote(ensure_encoded(path)),
            "(MESSAGES RECENT UNSEEN UIDNEXT UIDVALIDITY)",
            on_untagged=collect,
        )
        return status

    # =========================================================================
    # Folder Operations
    # =========================================================================

    def get_folders(self, hierarchical: bool = True, parent: Folder | None = None) -> list[Folder]:
        """
        List folders, as a tree (hierarchical) or a flat list.

        Raises:
            FolderFetchingError: If the listing fails.
        """
        self.check_connection()
        return self.folders.build_tree(hierarchical, parent=parent)

    def get_folders_with_status(self, hierarchical: bool = True, parent: Folder | None = None) -> list[Folder]:
        self.check_connection()
        return self.folders.build_tree(hierarchical, parent=parent, with_status=True)

    def get_folder(self, name: str, delimiter: str | bool | None = None) -> Folder | None:
        self.check_connection()
        return self.folders.get_folder(name, delimiter)

    def get_folder_by_name(self, name: str) -> Folder | None:
        self.check_connection()
        return self.folders.find_by_name(name)

    def get_folder_by_path(self, path: str) -> Folder | None:
        self.check_connection()
        return self.folders.find_by_path(path)

    def create_folder(self, path: str, expunge: bool = True) -> Folder | None:
        """
        Create a folder and notify the listener.

        Returns:
            The new folder, or None if it doesn't show up in a listing.
        """
        channel = self.connection
        channel.command("CREATE", quote(ensure_encoded(path)))
        logger.info(f"Created folder {path}")

        if expunge:
            self._expunge_if_selected()

        folder = self.get_folder_by_path(path)
        if folder is not None:
            self.listener.folder_created(folder)
        return folder

    def rename_folder(self, folder: Folder | str, new_name: str, expunge: bool = True) -> Folder | None:
        """
        Rename (move) a folder and notify the listener.

        Returns:
            The folder under its new name, or None if it can't be listed.
        """
        old = self._as_folder(folder)
        channel = self.connection
        channel.command("RENAME", quote(ensure_encoded(old.path)), quote(ensure_encoded(new_name)))
        logger.info(f"Renamed folder {old.path} -> {new_name}")

        if self.state.selected_folder == old.path:
            self.state.selected_folder = None
        if expunge:
            self._expunge_if_selected()

        new = self.get_folder(new_name)
        self.listener.folder_moved(old, new)
        return new

    def delete_folder(self, folder: Folder | str, expunge: bool = True) -> None:
        """Delete a folder and notify the listener."""
        target = self._as_folder(folder)
        channel = self.connection
        channel.command("DELETE", quote(ensure_encoded(target.path)))
        logger.info(f"Deleted folder {target.path}")

        if self.state.selected_folder == target.path:
            self.state.selected_folder = None
        if expunge:
            self._expunge_if_selected()

        self.listener.folder_deleted(target)

    def subscribe_folder(self, path: str) -> None:
        self.connection.command("SUBSCRIBE", quote(ensure_encoded(path)))

    def unsubscribe_folder(self, path: str) -> None:
        self.connection.command("UNSUBSCRIBE", quote(ensure_encoded(path)))

    def _as_folder(self, folder: Folder | str) -> Folder:
        if isinstance(folder, Folder):
            return folder
        return Folder.bind(self, folder, self.account.delimiter, [])

    def _expunge_if_selected(self) -> None:
        # EXPUNGE is only valid in the selected state
        if self.state.selected_folder is not None:
            self.expunge()

    # =========================================================================
    # Mailbox Commands
    # =========================================================================

    def expunge(self) -> list[int]:
        """
        Permanently remove messages flagged \\Deleted in the selected folder.

        Returns:
            Sequence numbers reported as expunged.
        """
        channel = self.connection
        response = channel.command("EXPUNGE")

        expunged = []
        for line in response.untagged:
            match = re.match(r"(\d+)\s+EXPUNGE", line.data, re.IGNORECASE)
            if match:
                expunged.append(int(match.group(1)))

        if expunged and self.state.selected_folder:
            self.uid_cache.invalidate(self.state.selected_folder)
        return expunged

    def append_message(
        self,
        path: str,
        message: bytes | str,
        flags: list[str] | None = None,
        internal_date: datetime | str | None = None,
    ) -> Response:
        """
        APPEND a raw message to a folder.

        Args:
            path: Target folder.
            message: RFC 822 message.
            flags: Flags to set on the stored message (e.g. ["\\Seen"]).
            internal_date: INTERNALDATE for the stored message. Datetimes are
                           rendered as "dd-Mon-yyyy HH:MM:SS +zzzz".
        """
        args: list[str | Literal | list[str]] = [quote(ensure_encoded(path))]
        if flags:
            args.append(list(flags))
        if internal_date is not None:
            args.append(quote(format_internal_date(internal_date)))

        data = message.encode("utf-8") if isinstance(message, str) else message
        args.append(Literal(data))

        return self.connection.command("APPEND", *args)

    def id(self, ids: dict[str, str] | None = None) -> dict[str, str | None]:
        """
        Exchange identification information (RFC 2971).

        Args:
            ids: Our identification fields ({"name": "imapwire", ...}).

        Returns:
            Server identification fields (keys lower-cased).
        """
        if ids:
            argument = "(" + " ".join(f"{quote(k)} {quote(v)}" for k, v in ids.items()) + ")"
        else:
            argument = "NIL"

        result: dict[str, str | None] = {}

        def collect(line: ResponseLine) -> None:
            tokens = line.tokens()
            if len(tokens) >= 2 and str(tokens[0]).upper() == "ID" and isinstance(tokens[1], list):
                values = tokens[1]
                for i in range(0, len(values) - 1, 2):
                    value = values[i + 1]
                    result[as_text(values[i]).lower()] = None if value is None else as_text(value)

        self.connection.command("ID", argument, on_untagged=collect)
        return result

    def get_quota(self) -> dict[str, dict[str, dict[str, int]]]:
        """
        Quota limits and usage for the user's quota root.

        Returns:
            {root: {resource: {"usage": n, "limit": n}}}
        """
        quotas: dict[str, dict[str, dict[str, int]]] = {}
        self.connection.command(
            "GETQUOTA",
            quote(self.account.username),
            on_untagged=lambda line: self._collect_quota(line, quotas),
        )
        return quotas

    def get_quota_root(self, quota_root: str = "INBOX") -> dict[str, Any]:
        """
        Quota roots of a mailbox together with their quotas.

        Returns:
            {"roots": [...], "quotas": {root: {resource: {"usage", "limit"}}}}
        """
        roots: list[str] = []
        quotas: dict[str, dict[str, dict[str, int]]] = {}

        def collect(line: ResponseLine) -> None:
            tokens = line.tokens()
            if tokens and str(tokens[0]).upper() == "QUOTAROOT":
                roots.extend(as_text(t) for t in tokens[2:])
            else:
                self._collect_quota(line, quotas)

        self.connection.command("GETQUOTAROOT", quote(ensure_encoded(quota_root)), on_untagged=collect)
        return {"roots": roots, "quotas": quotas}

    def _collect_quota(self, line: ResponseLine, quotas: dict) -> None:
        tokens = line.tokens()
        if len(tokens) < 3 or str(tokens[0]).upper() != "QUOTA" or not isinstance(tokens[2], list):
            return
        resources = {}
        values = tokens[2]
        for i in range(0, len(values) - 2, 3):
            resources[as_text(values[i]).upper()] = {
                "usage": int(values[i + 1]),
                "limit": int(values[i + 2]),
            }
        quotas[as_text(tokens[1])] = resources

    # =========================================================================
    # Message Fetching
    # =========================================================================

    def overview(self, sequence: str = "1:*", uid: bool | None = None) -> dict[int, MessageOverview]:
        """
        Fetch header-level overviews from the selected folder.

        Args:
            sequence: Message set, e.g. "1:*" or "4,7:9".
            uid: Interpret ``sequence`` as UIDs. None follows the account's
                 addressing mode.

        Returns:
            Mapping of message number (UID or msgn, per account mode) to
            overview.
        """
        use_uid = self.account.uses_uid if uid is None else uid
        command = "UID FETCH" if use_uid else "FETCH"
        messages = self._fetch(command, sequence, OVERVIEW_ITEMS)
        return {m.number: m for m in messages}

    def get_message_by_msgn(self, msgn: int) -> MessageOverview:
        """
        Resolve a message in the selected folder by sequence number.

        Raises:
            MessageNotFoundError: If the server returns nothing for ``msgn``.
        """
        for message in self._fetch("FETCH", str(msgn), OVERVIEW_ITEMS):
            if message.msgn == msgn:
                return message
        raise MessageNotFoundError(f"No message with sequence number {msgn}")

    def get_message_by_uid(self, uid: int) -> MessageOverview:
        for message in self._fetch("UID FETCH", str(uid), OVERVIEW_ITEMS):
            if message.uid == uid:
                return message
        raise MessageNotFoundError(f"No message with UID {uid}")

    def fetch_raw(self, uid: int) -> bytes:
        """Full RFC 822 bytes of a message (UID FETCH BODY.PEEK[])."""
        self._require_selected()
        raw: list[bytes] = []

        def collect(line: ResponseLine) -> None:
            data = self._fetch_data(line)
            if data and data[1].get("UID") is not None and int(data[1]["UID"]) == uid:
                body = data[1].get("BODY[]")
                if body is not None:
                    raw.append(body if isinstance(body, bytes) else as_text(body).encode("utf-8"))

        self.connection.command("UID FETCH", str(uid), "(UID BODY.PEEK[])", on_untagged=collect)
        if not raw:
            raise MessageNotFoundError(f"No message with UID {uid}")
        return raw[0]

    def get_uid(self, msgn: int) -> int:
        """Translate a sequence number to a UID in the selected folder."""
        folder = self._require_selected()
        cached = self.uid_cache.get(folder, msgn)
        if cached is not None:
            return cached

        for line in self.connection.command("FETCH", str(msgn), "(UID)").untagged:
            data = self._fetch_data(line)
            if data and data[0] == msgn and "UID" in data[1]:
                uid = int(data[1]["UID"])
                self.uid_cache.store(folder, msgn, uid)
                return uid
        raise MessageNotFoundError(f"No message with sequence number {msgn}")

    def get_msgn(self, uid: int) -> int:
        """Translate a UID to its current sequence number in the selected folder."""
        folder = self._require_selected()
        cached = self.uid_cache.get_msgn(folder, uid)
        if cached is not None:
            return cached

        for line in self.connection.command("UID FETCH", str(uid), "(UID)").untagged:
            data = self._fetch_data(line)
            if data and "UID" in data[1] and int(data[1]["UID"]) == uid:
                self.uid_cache.store(folder, data[0], uid)
                return data[0]
        raise MessageNotFoundError(f"No message with UID {uid}")

    def _require_selected(self) -> str:
        self.check_connection()
        if self.state.selected_folder is None:
            raise FolderFetchingError("No folder selected")
        return self.state.selected_folder

    def _fetch(self, command: str, sequence: str, items: str) -> list[MessageOverview]:
        """Run a FETCH and build overviews from every FETCH line."""
        folder = self._require_selected()
        messages: list[MessageOverview] = []

        def collect(line: ResponseLine) -> None:
            data = self._fetch_data(line)
            if data is None:
                return
            msgn, values = data
            message = self._build_overview(folder, msgn, values)
            if message.uid is not None:
                self.uid_cache.store(folder, msgn, message.uid)
            messages.append(message)

        self.connection.command(command, sequence, items, on_untagged=collect)
        logger.debug(f"Fetched {len(messages)} messages from {folder}")
        return messages

    def _fetch_data(self, line: ResponseLine) -> tuple[int, dict[str, Any]] | None:
        """Split "* n FETCH (...)" into (n, {item: value})."""
        match = re.match(r"(\d+)\s+FETCH\s", line.data, re.IGNORECASE)
        if not match:
            return None
        tokens = line.tokens()
        if len(tokens) < 3 or not isinstance(tokens[2], list):
            raise ProtocolError(f"Malformed FETCH response: {line.text}")
        return int(tokens[0]), pairs(tokens[2])

    def _build_overview(self, folder: str, msgn: int, values: dict[str, Any]) -> MessageOverview:
        header = values.get("BODY[HEADER]") or b""
        if not isinstance(header, bytes):
            header = as_text(header).encode("utf-8")

        message = MessageOverview(
            msgn=msgn,
            uid=int(values["UID"]) if values.get("UID") is not None else None,
            folder=folder,
            flags=[as_text(f) for f in values.get("FLAGS") or []],
            size=int(values["RFC822.SIZE"]) if values.get("RFC822.SIZE") is not None else None,
            internal_date=as_text(values.get("INTERNALDATE")),
            header=header,
            sequence=self.account.sequence,
        )
        message._mask_factory = self.message_mask
        return message


def format_internal_date(value: datetime | str) -> str:
    """
    Render an APPEND date-time: "dd-Mon-yyyy HH:MM:SS +zzzz".

    Naive datetimes are taken as local time. Strings pass through untouched.
    """
    if isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.astimezone()
    return (
        f"{value.day:02d}-{_MONTHS[value.month - 1]}-{value.year:04d} "
        f"{value:%H:%M:%S} {value:%z}"
    )
