# =============================================================================
# Folder Model
# =============================================================================
# Represents a mailbox folder (IMAP "mailbox") as returned by one LIST call.
#
# Folders are snapshots: every listing builds fresh objects, there is no
# identity across calls. In a hierarchical listing each folder owns its
# children, and a child's path is always
#
#     parent.path + parent.delimiter + <local name>
#
# The link back to the client is a weak reference used only to issue further
# protocol calls (select, rename, IDLE, ...); a folder never keeps a session
# alive on its own.
# =============================================================================

import threading
import weakref
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from imapwire.imap.errors import FolderFetchingError
from imapwire.imap.utf7 import decode_mailbox

if TYPE_CHECKING:
    from imapwire.core.message import MessageOverview
    from imapwire.imap.client import IMAPClient
    from imapwire.imap.idle import IdleEvent


@dataclass
class Folder:
    """
    One mailbox folder.

    Attributes:
        path: Full path in the server's encoding (modified UTF-7).
              This is what goes back on the wire.
        delimiter: Hierarchy delimiter reported by the server.
        full_name: Decoded full path, for display.
        name: Last component of ``full_name``.

        no_inferiors: Folder can't have children (\\NoInferiors).
        no_select: Folder is a container only and can't be opened (\\NoSelect).
        marked: Server flagged it as possibly containing new mail (\\Marked).
        has_children: Folder has child folders (\\HasChildren).
        referral: Folder refers to another server (\\Referral).

        children: Child folders (hierarchical listings only).
        status: STATUS snapshot, loaded on demand.

    Example:
        >>> folder = Folder(path="INBOX/Entw&APw-rfe", delimiter="/")
        >>> folder.full_name, folder.name
        ('INBOX/Entwürfe', 'Entwürfe')
    """

    path: str
    delimiter: str = "/"
    attributes: list[str] = field(default_factory=list)
    full_name: str = ""
    name: str = ""

    no_inferiors: bool = False
    no_select: bool = False
    marked: bool = False
    has_children: bool = False
    referral: bool = False

    children: list["Folder"] = field(default_factory=list)
    status: dict[str, int] | None = None

    _client_ref: Any = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.full_name:
            self.full_name = decode_mailbox(self.path)
        if not self.name:
            self.name = self.full_name.split(self.delimiter)[-1] if self.delimiter else self.full_name
        self._parse_attributes(self.attributes)

    def _parse_attributes(self, attributes: list[str]) -> None:
        """Set the attribute flags from LIST attributes (case-insensitive)."""
        upper = {a.upper() for a in attributes}
        self.no_inferiors = self.no_inferiors or "\\NOINFERIORS" in upper
        self.no_select = self.no_select or "\\NOSELECT" in upper
        self.marked = self.marked or "\\MARKED" in upper
        self.referral = self.referral or "\\REFERRAL" in upper
        self.has_children = self.has_children or "\\HASCHILDREN" in upper

    @classmethod
    def bind(
        cls,
        client: "IMAPClient",
        path: str,
        delimiter: str,
        attributes: list[str],
    ) -> "Folder":
        """Build a folder attached (weakly) to ``client``."""
        folder = cls(path=path, delimiter=delimiter, attributes=list(attributes))
        folder._client_ref = weakref.ref(client)
        return folder

    @property
    def client(self) -> "IMAPClient":
        client = self._client_ref() if self._client_ref is not None else None
        if client is None:
            raise FolderFetchingError(f"Folder {self.path!r} is not attached to a live client")
        return client

    def set_children(self, children: list["Folder"]) -> "Folder":
        self.children = children
        return self

    @property
    def parent_path(self) -> str | None:
        """Path of the parent folder, or None at the top level."""
        if self.delimiter and self.delimiter in self.path:
            return self.path.rsplit(self.delimiter, 1)[0]
        return None

    def walk(self) -> Iterator["Folder"]:
        """Yield this folder and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    # =========================================================================
    # Folder Operations
    # =========================================================================

    def open(self, force: bool = False) -> dict:
        """Select this folder on the client."""
        return self.client.open_folder(self.path, force=force)

    def examine(self) -> dict:
        """EXAMINE this folder (read-only status check)."""
        return self.client.check_folder(self.path)

    def get_status(self) -> dict[str, int]:
        """Fetch a fresh STATUS snapshot."""
        return self.client.folder_status(self.path)

    def load_status(self) -> "Folder":
        self.status = self.get_status()
        return self

    def move(self, new_name: str, expunge: bool = True) -> "Folder | None":
        """
        Rename/move this folder.

        Returns:
            The folder under its new name, or None if it can't be listed.
        """
        return self.client.rename_folder(self, new_name, expunge=expunge)

    def rename(self, new_name: str, expunge: bool = True) -> "Folder | None":
        return self.move(new_name, expunge=expunge)

    def delete(self, expunge: bool = True) -> None:
        self.client.delete_folder(self, expunge=expunge)

    def subscribe(self) -> None:
        self.client.subscribe_folder(self.path)

    def unsubscribe(self) -> None:
        self.client.unsubscribe_folder(self.path)

    # =========================================================================
    # Messages
    # =========================================================================

    def overview(self, sequence: str | None = None) -> dict[int, "MessageOverview"]:
        """
        Overview of messages in this folder.

        Args:
            sequence: Message set ("1:*" by default), interpreted as UIDs or
                      sequence numbers according to the account's mode.
        """
        self.client.open_folder(self.path)
        return self.client.overview(sequence or "1:*")

    def append_message(
        self,
        message: bytes | str,
        flags: list[str] | None = None,
        internal_date: datetime | str | None = None,
    ) -> None:
        """APPEND a raw RFC 822 message to this folder."""
        self.client.append_message(self.path, message, flags=flags, internal_date=internal_date)

    def save_message(self, uid: int, filename: str | Path = "email.eml") -> Path:
        """Write the raw message with ``uid`` to ``filename``."""
        self.client.open_folder(self.path)
        target = Path(filename)
        target.write_bytes(self.client.fetch_raw(uid))
        return target

    def get_message_by_msgn(self, msgn: int) -> "MessageOverview":
        self.client.open_folder(self.path)
        return self.client.get_message_by_msgn(msgn)

    def get_message_by_uid(self, uid: int) -> "MessageOverview":
        self.client.open_folder(self.path)
        return self.client.get_message_by_uid(uid)

    # =========================================================================
    # IDLE
    # =========================================================================

    def idle_events(
        self,
        timeout: float = 300,
        callback: Callable[["MessageOverview"], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> Iterator["IdleEvent"]:
        """
        Stream new-message events for this folder via IMAP IDLE.

        Args:
            timeout: Seconds between keep-alive refreshes; max 1740 (RFC 2177).
                     Should not be lower than the server's "* OK Still here"
                     interval.
            callback: Called with each new message before the event is yielded.
            cancel: Checked once per loop iteration.
        """
        from imapwire.imap.idle import IdleMonitor
        return IdleMonitor(self.client).events(
            self.path, timeout=timeout, callback=callback, cancel=cancel
        )

    def idle(
        self,
        callback: Callable[["MessageOverview"], None],
        timeout: float = 300,
        cancel: threading.Event | None = None,
    ) -> None:
        """Block in IDLE, calling ``callback`` for every new message."""
        for _ in self.idle_events(timeout=timeout, callback=callback, cancel=cancel):
            pass

    def __str__(self) -> str:
        return self.full_name

    def __repr__(self) -> str:
        return (
            f"Folder(path={self.path!r}, delimiter={self.delimiter!r}, "
            f"children={len(self.children)})"
        )
