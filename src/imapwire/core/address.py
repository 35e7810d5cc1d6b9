# =============================================================================
# Address Model
# =============================================================================
# One mailbox address from a message header, e.g.
#
#   "Jane Doe" <jane@example.com>
#     personal = "Jane Doe"
#     mailbox  = "jane"
#     host     = "example.com"
#     mail     = "jane@example.com"
#     full     = "Jane Doe <jane@example.com>"
#
# Immutable once built.
# =============================================================================

import email.header
import email.utils
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Address:
    """A parsed email address."""
    personal: str = ""
    mailbox: str = ""
    host: str = ""
    mail: str = ""
    full: str = ""

    @classmethod
    def parse(cls, header_value: str | None) -> list["Address"]:
        """
        Parse every address in a header value (From, To, Cc, ...).

        RFC 2047 encoded display names are decoded.

        Args:
            header_value: Raw header text, may be None.

        Returns:
            List of Address objects (empty for missing/empty headers).
        """
        if not header_value:
            return []

        addresses = []
        for personal, mail in email.utils.getaddresses([header_value]):
            if not mail and not personal:
                continue
            personal = _decode_words(personal)
            mailbox, _, host = mail.partition("@")
            full = f"{personal} <{mail}>" if personal else mail
            addresses.append(cls(
                personal=personal,
                mailbox=mailbox,
                host=host,
                mail=mail,
                full=full,
            ))
        return addresses

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    def __str__(self) -> str:
        return self.full


def _decode_words(value: str) -> str:
    """Decode RFC 2047 encoded words ("=?utf-8?q?...?=")."""
    if "=?" not in value:
        return value
    parts = []
    for part, charset in email.header.decode_header(value):
        if isinstance(part, bytes):
            parts.append(part.decode(charset or "utf-8", errors="replace"))
        else:
            parts.append(part)
    return "".join(parts)
