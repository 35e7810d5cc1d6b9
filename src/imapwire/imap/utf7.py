# =============================================================================
# Modified UTF-7 Mailbox Names
# =============================================================================
# IMAP mailbox names travel in a variant of UTF-7 (RFC 3501 section 5.1.3):
#
#   - Printable US-ASCII (0x20-0x7e) stands for itself, except "&"
#   - "&" is written as "&-"
#   - Everything else is UTF-16BE, base64 encoded with "," instead of "/",
#     no padding, wrapped in "&" ... "-"
#
# Example:
#   "Entwürfe"  <->  "Entw&APw-rfe"
# =============================================================================

import base64


def _b64_encode(chunk: str) -> str:
    """Encode a run of non-ASCII characters as modified base64."""
    raw = base64.b64encode(chunk.encode("utf-16-be")).decode("ascii")
    return raw.rstrip("=").replace("/", ",")


def _b64_decode(chunk: str) -> str:
    """Decode a modified base64 run back to text."""
    padded = chunk.replace(",", "/")
    padded += "=" * (-len(padded) % 4)
    return base64.b64decode(padded).decode("utf-16-be")


def encode_mailbox(name: str) -> str:
    """
    Encode a mailbox name for the wire.

    Args:
        name: Mailbox name as text (e.g. "Entwürfe").

    Returns:
        ASCII-only modified UTF-7 form (e.g. "Entw&APw-rfe").
    """
    out: list[str] = []
    pending: list[str] = []

    def flush() -> None:
        if pending:
            out.append("&" + _b64_encode("".join(pending)) + "-")
            pending.clear()

    for char in name:
        if 0x20 <= ord(char) <= 0x7E:
            flush()
            out.append("&-" if char == "&" else char)
        else:
            pending.append(char)
    flush()

    return "".join(out)


def decode_mailbox(name: str | bytes) -> str:
    """
    Decode a modified UTF-7 mailbox name to text.

    Args:
        name: Mailbox name as received from the server.

    Returns:
        Decoded text. Names without "&" are returned unchanged.

    Raises:
        ValueError: If a shifted section is not valid modified base64.
    """
    if isinstance(name, bytes):
        name = name.decode("ascii", errors="replace")

    if "&" not in name:
        return name

    out: list[str] = []
    i = 0
    while i < len(name):
        char = name[i]
        if char != "&":
            out.append(char)
            i += 1
            continue

        end = name.find("-", i + 1)
        if end == -1:
            raise ValueError(f"Unterminated shift sequence in mailbox name: {name!r}")

        chunk = name[i + 1:end]
        if chunk:
            try:
                out.append(_b64_decode(chunk))
            except (ValueError, UnicodeDecodeError) as e:
                raise ValueError(f"Invalid modified UTF-7 in {name!r}") from e
        else:
            out.append("&")
        i = end + 1

    return "".join(out)


def ensure_encoded(name: str) -> str:
    """
    Return the wire form of a mailbox name that may already be encoded.

    Folder paths from LIST are already in modified UTF-7 and go back out
    untouched; anything else (non-ASCII text, a bare "&") is encoded.
    """
    if not name.isascii():
        return encode_mailbox(name)
    try:
        if encode_mailbox(decode_mailbox(name)) == name:
            return name
    except ValueError:
        pass
    return encode_mailbox(name)
