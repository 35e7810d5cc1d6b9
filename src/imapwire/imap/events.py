# =============================================================================
# Session Listener
# =============================================================================
# Explicit notification interface. The client, its folders and the IDLE
# monitor call these hooks synchronously at fixed points:
#
#   folder_created  after CREATE succeeded and the folder could be listed
#   folder_moved    after RENAME succeeded
#   folder_deleted  after DELETE succeeded
#   new_message     after IDLE announced and resolved a new message
#
# Subclass and override what you need; the defaults do nothing.
# =============================================================================

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from imapwire.core import Folder, MessageOverview


class SessionListener:
    """No-op listener; override the hooks you care about."""

    def folder_created(self, folder: "Folder") -> None:
        pass

    def folder_moved(self, old: "Folder", new: "Folder | None") -> None:
        pass

    def folder_deleted(self, folder: "Folder") -> None:
        pass

    def new_message(self, message: "MessageOverview") -> None:
        pass
