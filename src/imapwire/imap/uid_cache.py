# =============================================================================
# UID Translation Cache
# =============================================================================
# Sequence numbers shift whenever messages are expunged; UIDs don't. When a
# session addresses messages by UID we still get sequence numbers from the
# server (EXISTS, FETCH), so we remember msgn -> uid per folder.
#
# Each folder entry carries an epoch that bumps on every invalidation, which
# happens on re-selection and on every size-changing event (EXISTS/EXPUNGE).
# =============================================================================

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class UidCacheEntry:
    """Sequence-number to UID mapping for one folder."""
    uids: dict[int, int] = field(default_factory=dict)
    epoch: int = 0


class UidTranslationCache:
    """
    Per-folder msgn <-> uid bookkeeping.

    Usage:
        >>> cache = UidTranslationCache()
        >>> cache.store("INBOX", 1, 1042)
        >>> cache.get("INBOX", 1)
        1042
        >>> cache.invalidate("INBOX")
        >>> cache.get("INBOX", 1) is None
        True

    Attributes:
        enabled: When False nothing is stored and every lookup misses.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._entries: dict[str, UidCacheEntry] = {}

    def _entry(self, folder: str) -> UidCacheEntry:
        return self._entries.setdefault(folder, UidCacheEntry())

    def store(self, folder: str, msgn: int, uid: int) -> None:
        if self.enabled:
            self._entry(folder).uids[msgn] = uid

    def get(self, folder: str, msgn: int) -> int | None:
        """UID for ``msgn`` in ``folder``, or None if unknown."""
        if not self.enabled or folder not in self._entries:
            return None
        return self._entries[folder].uids.get(msgn)

    def get_msgn(self, folder: str, uid: int) -> int | None:
        """Sequence number for ``uid`` in ``folder``, or None if unknown."""
        if not self.enabled or folder not in self._entries:
            return None
        for msgn, known in self._entries[folder].uids.items():
            if known == uid:
                return msgn
        return None

    def epoch(self, folder: str) -> int:
        return self._entries[folder].epoch if folder in self._entries else 0

    def invalidate(self, folder: str | None = None) -> None:
        """
        Drop cached mappings.

        Args:
            folder: Folder to clear; None clears every folder.
        """
        targets = list(self._entries) if folder is None else [folder]
        for name in targets:
            entry = self._entry(name)
            entry.uids.clear()
            entry.epoch += 1
        logger.debug(f"UID cache invalidated for {folder or 'all folders'}")

    def __len__(self) -> int:
        return sum(len(entry.uids) for entry in self._entries.values())
