# =============================================================================
# Message Overview Model
# =============================================================================
# Header-level view of a message as returned by an overview FETCH:
#
#   FETCH n (UID FLAGS RFC822.SIZE INTERNALDATE BODY.PEEK[HEADER])
#
# Bodies and attachments are not parsed here; fetch_raw() on the client hands
# out the RFC 822 bytes for whoever does MIME parsing.
# =============================================================================

import email.header
import email.utils
from dataclasses import dataclass, field
from datetime import datetime
from email.message import Message as EmailMessage
from email.parser import BytesHeaderParser
from typing import TYPE_CHECKING, Any

from imapwire.core.address import Address

if TYPE_CHECKING:
    from imapwire.masks import MessageMask


@dataclass
class MessageOverview:
    """
    Envelope-level information about one message.

    Attributes:
        msgn: Message sequence number at fetch time.
        uid: Message UID (stable within a UIDVALIDITY epoch).
        folder: Path of the folder the message was fetched from.
        flags: IMAP flags (e.g. "\\Seen", "\\Flagged").
        size: RFC822.SIZE in bytes.
        internal_date: Server INTERNALDATE string.
        header: Raw header bytes.
        sequence: Addressing mode that decides what ``number`` returns,
                  "msgn" or "uid".
    """
    msgn: int
    uid: int | None = None
    folder: str = ""
    flags: list[str] = field(default_factory=list)
    size: int | None = None
    internal_date: str = ""
    header: bytes = field(default=b"", repr=False)
    sequence: str = "msgn"

    # Parsed lazily from `header`
    _parsed: EmailMessage | None = field(default=None, init=False, repr=False, compare=False)
    _mask_factory: Any = field(default=None, init=False, repr=False, compare=False)

    @property
    def number(self) -> int | None:
        """UID or sequence number, depending on the addressing mode."""
        return self.uid if self.sequence == "uid" else self.msgn

    def set_sequence(self, sequence: str) -> None:
        self.sequence = sequence

    # -------------------------------------------------------------------------
    # Headers
    # -------------------------------------------------------------------------

    @property
    def headers(self) -> EmailMessage:
        if self._parsed is None:
            self._parsed = BytesHeaderParser().parsebytes(self.header)
        return self._parsed

    def get_header(self, name: str) -> str:
        """Decoded value of header ``name`` (empty string if missing)."""
        value = self.headers.get(name)
        if value is None:
            return ""
        parts = []
        for part, charset in email.header.decode_header(str(value)):
            if isinstance(part, bytes):
                parts.append(part.decode(charset or "utf-8", errors="replace"))
            else:
                parts.append(part)
        return "".join(parts)

    @property
    def subject(self) -> str:
        return self.get_header("Subject")

    @property
    def message_id(self) -> str:
        return self.get_header("Message-ID").strip()

    @property
    def from_(self) -> list[Address]:
        return self._addresses("From")

    @property
    def to(self) -> list[Address]:
        return self._addresses("To")

    @property
    def cc(self) -> list[Address]:
        return self._addresses("Cc")

    def _addresses(self, name: str) -> list[Address]:
        value = self.headers.get(name)
        return Address.parse(str(value) if value is not None else None)

    @property
    def date(self) -> datetime | None:
        value = self.headers.get("Date")
        if not value:
            return None
        try:
            return email.utils.parsedate_to_datetime(str(value))
        except (TypeError, ValueError):
            return None

    @property
    def seen(self) -> bool:
        return "\\SEEN" in (f.upper() for f in self.flags)

    # -------------------------------------------------------------------------
    # Output mask
    # -------------------------------------------------------------------------

    def mask(self) -> "MessageMask":
        """Render this message through the client's configured mask."""
        if self._mask_factory is None:
            from imapwire.masks import resolve_message_mask
            self._mask_factory = resolve_message_mask("default")
        return self._mask_factory(self)

    def __str__(self) -> str:
        return f"#{self.number} {self.subject}"
