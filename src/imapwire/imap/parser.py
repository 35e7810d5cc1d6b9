# =============================================================================
# IMAP Response Parser
# =============================================================================
# Turns the data part of an untagged response into Python values:
#
#   atom            -> str       (INBOX, \HasChildren, BODY[HEADER], 42)
#   NIL             -> None
#   "quoted string" -> str       (escapes resolved)
#   {N} literal     -> bytes     (payload read by the CommandChannel)
#   ( ... )         -> list      (nested as deep as the server likes)
#
# Bracketed sections inside an atom (BODY[HEADER.FIELDS (FROM TO)]) are kept
# as part of the atom, parentheses and all.
# =============================================================================

import re
from collections.abc import Iterable, Sequence
from typing import Any

from imapwire.imap.errors import ProtocolError

# A literal marker is "{N}" (server side never uses LITERAL+ "{N+}")
_LITERAL_MARKER = re.compile(r"\{(\d+)\}")


def tokenize(text: str, literals: Sequence[bytes] = ()) -> list[Any]:
    """
    Tokenize IMAP response data.

    Args:
        text: Response text with literal markers ("{12}") left in place.
        literals: Literal payloads in the order their markers appear.

    Returns:
        List of tokens; parenthesized groups become nested lists.

    Raises:
        ProtocolError: On unbalanced parentheses, unterminated strings or a
                       literal marker without a payload.

    Example:
        >>> tokenize('(\\\\HasChildren) "/" INBOX')
        [['\\\\HasChildren'], '/', 'INBOX']
    """
    pending = iter(literals)
    stack: list[list[Any]] = [[]]
    i = 0
    length = len(text)

    while i < length:
        char = text[i]

        if char in " \r\n":
            i += 1
        elif char == "(":
            stack.append([])
            i += 1
        elif char == ")":
            if len(stack) == 1:
                raise ProtocolError(f"Unbalanced ')' in response: {text!r}")
            group = stack.pop()
            stack[-1].append(group)
            i += 1
        elif char == '"':
            value, i = _read_quoted(text, i)
            stack[-1].append(value)
        elif char == "{":
            match = _LITERAL_MARKER.match(text, i)
            if not match:
                raise ProtocolError(f"Malformed literal marker in response: {text!r}")
            try:
                stack[-1].append(next(pending))
            except StopIteration:
                raise ProtocolError(f"Missing literal payload in response: {text!r}") from None
            i = match.end()
        else:
            atom, i = _read_atom(text, i)
            stack[-1].append(None if atom.upper() == "NIL" else atom)

    if len(stack) != 1:
        raise ProtocolError(f"Unbalanced '(' in response: {text!r}")

    return stack[0]


def _read_quoted(text: str, start: int) -> tuple[str, int]:
    """Read a quoted string starting at the opening quote."""
    out = []
    i = start + 1
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text):
            out.append(text[i + 1])
            i += 2
        elif char == '"':
            return "".join(out), i + 1
        else:
            out.append(char)
            i += 1
    raise ProtocolError(f"Unterminated quoted string in response: {text!r}")


def _read_atom(text: str, start: int) -> tuple[str, int]:
    """Read an atom, keeping bracketed sections intact."""
    depth = 0
    i = start
    while i < len(text):
        char = text[i]
        if char == "[":
            depth += 1
        elif char == "]" and depth:
            depth -= 1
        elif depth == 0 and char in ' ()"':
            break
        i += 1
    return text[start:i], i


def pairs(items: Iterable[Any]) -> dict[str, Any]:
    """
    Convert a flat [key, value, key, value] list into a dict.

    Keys are upper-cased so callers can look up "UID" regardless of how
    the server spelled it.
    """
    items = list(items)
    if len(items) % 2:
        raise ProtocolError(f"Odd number of items in key/value list: {items!r}")
    return {
        str(items[i]).upper(): items[i + 1]
        for i in range(0, len(items), 2)
    }


def as_text(value: Any) -> str:
    """Coerce a token (str, bytes or None) to text."""
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)
