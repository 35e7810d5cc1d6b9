# =============================================================================
# Folder Registry
# =============================================================================
# Lists and assembles the folder namespace.
#
# LIST response format:
#     * LIST (\HasNoChildren) "/" "INBOX/Sent"
#     * LIST (\Noselect \HasChildren) "." Archive
#     * LIST () NIL {11}
#     Entw&APw-rfe
#
# Hierarchical listings walk the tree one level at a time with "%" and only
# descend into folders flagged \HasChildren, so leaf folders never cost an
# extra round trip. Lookups by name/path scan a fresh flat listing; nothing
# is cached between calls.
# =============================================================================

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from imapwire.core import Folder
from imapwire.imap.channel import ResponseLine, quote
from imapwire.imap.errors import FolderFetchingError, IMAPError, ProtocolError
from imapwire.imap.parser import as_text
from imapwire.imap.utf7 import ensure_encoded

if TYPE_CHECKING:
    from imapwire.imap.client import IMAPClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListEntry:
    """
    One parsed LIST line.

    Attributes:
        path: Folder path in server encoding.
        delimiter: Hierarchy delimiter, or None if the server sent NIL.
        attributes: Name attributes such as "\\HasChildren".
    """
    path: str
    delimiter: str | None
    attributes: tuple[str, ...]


def parse_list_line(line: ResponseLine) -> ListEntry | None:
    """
    Parse an untagged LIST/LSUB line.

    Returns:
        ListEntry, or None if the line isn't a LIST response.

    Raises:
        ProtocolError: If the line is a LIST response but malformed.
    """
    tokens = line.tokens()
    if not tokens or str(tokens[0]).upper() not in ("LIST", "LSUB"):
        return None

    if len(tokens) < 4 or not isinstance(tokens[1], list):
        raise ProtocolError(f"Malformed LIST response: {line.text}")

    attributes = tuple(as_text(a) for a in tokens[1])
    delimiter = as_text(tokens[2]) if tokens[2] is not None else None
    path = as_text(tokens[3])

    return ListEntry(path=path, delimiter=delimiter or None, attributes=attributes)


class FolderRegistry:
    """
    Folder listing for one IMAPClient.

    Usage:
        >>> registry = FolderRegistry(client)
        >>> [f.path for f in registry.build_tree(hierarchical=False)]
        ['INBOX', 'INBOX/Sent', 'Archive']
    """

    def __init__(self, client: "IMAPClient") -> None:
        self.client = client

    # =========================================================================
    # Listing
    # =========================================================================

    def list_entries(self, reference: str = "", pattern: str = "*") -> list[ListEntry]:
        """
        Issue LIST and parse the result.

        Args:
            reference: Reference name (usually empty).
            pattern: Mailbox pattern; "*" matches everything, "%" one level.

        Raises:
            FolderFetchingError: If the server refuses the listing.
        """
        channel = self.client.connection
        entries: list[ListEntry] = []

        def collect(line: ResponseLine) -> None:
            entry = parse_list_line(line)
            if entry is not None:
                entries.append(entry)

        try:
            channel.command(
                "LIST",
                quote(ensure_encoded(reference)),
                quote(ensure_encoded(pattern)),
                on_untagged=collect,
            )
        except ProtocolError as e:
            raise FolderFetchingError(f"Failed to list folders matching {pattern!r}") from e

        logger.debug(f"LIST {reference!r} {pattern!r}: {len(entries)} folders")
        return entries

    def build_tree(
        self,
        hierarchical: bool = True,
        parent: Folder | None = None,
        with_status: bool = False,
    ) -> list[Folder]:
        """
        Build Folder objects from the server's namespace.

        Args:
            hierarchical: Build a tree (children nested under parents) instead
                          of a flat list.
            parent: List only the children of this folder.
            with_status: Load a STATUS snapshot for every folder.

        Returns:
            Top-level folders (or all folders when flat).
        """
        if parent is not None:
            pattern = f"{parent.path}{parent.delimiter}" + ("%" if hierarchical else "*")
        else:
            pattern = "%" if hierarchical else "*"

        folders = []
        for entry in self.list_entries("", pattern):
            if parent is not None and entry.path == parent.path:
                continue

            folder = Folder.bind(
                self.client,
                entry.path,
                entry.delimiter or self.client.account.delimiter,
                list(entry.attributes),
            )

            if hierarchical and folder.has_children:
                folder.set_children(
                    self.build_tree(True, parent=folder, with_status=with_status)
                )

            if with_status and not folder.no_select:
                try:
                    folder.load_status()
                except IMAPError as e:
                    logger.warning(f"Could not get status for {folder.path}: {e}")

            folders.append(folder)

        return folders

    # =========================================================================
    # Lookup
    # =========================================================================

    def find_by_name(self, name: str) -> Folder | None:
        """First folder whose decoded name (last component) equals ``name``."""
        for folder in self.build_tree(hierarchical=False):
            if folder.name == name:
                return folder
        return None

    def find_by_path(self, path: str) -> Folder | None:
        """Folder whose path (encoded or decoded) equals ``path``."""
        for folder in self.build_tree(hierarchical=False):
            if path in (folder.path, folder.full_name):
                return folder
        return None

    def get_folder(self, name: str, delimiter: str | bool | None = None) -> Folder | None:
        """
        Resolve a folder by path or name.

        Args:
            name: Folder name or full path.
            delimiter: A delimiter string forces lookup by path, False forces
                       lookup by name, None uses the account delimiter to
                       decide (names containing it are treated as paths).
        """
        if delimiter is not None and delimiter is not False:
            return self.find_by_path(name)

        if delimiter is None:
            delimiter = self.client.account.delimiter
            if delimiter and delimiter in name:
                return self.find_by_path(name)

        return self.find_by_name(name)
