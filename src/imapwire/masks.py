# =============================================================================
# Message Masks
# =============================================================================
# A mask decides how a fetched message is presented to the caller. Masks are
# registered by name and resolved once, when the IMAPClient is constructed,
# so a typo in the configuration fails immediately instead of on the first
# message.
#
#   register_message_mask("summary", SummaryMask)
#   account.message_mask = "summary"
# =============================================================================

from typing import TYPE_CHECKING, Any, Callable

from imapwire.core.account import ConfigError

if TYPE_CHECKING:
    from imapwire.core import MessageOverview


class MessageMask:
    """
    Default mask: a plain dict view of the overview.

    Subclass and register to customise the representation.
    """

    def __init__(self, message: "MessageOverview") -> None:
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        message = self.message
        date = message.date
        return {
            "number": message.number,
            "uid": message.uid,
            "msgn": message.msgn,
            "folder": message.folder,
            "subject": message.subject,
            "from": [str(a) for a in message.from_],
            "to": [str(a) for a in message.to],
            "date": date.isoformat() if date else None,
            "flags": list(message.flags),
            "size": message.size,
        }

    def __getattr__(self, name: str) -> Any:
        # Fall through to the wrapped message for anything we don't shape
        return getattr(self.message, name)


MaskFactory = Callable[["MessageOverview"], Any]

_MESSAGE_MASKS: dict[str, MaskFactory] = {
    "default": MessageMask,
}


def register_message_mask(name: str, factory: MaskFactory) -> None:
    """Register ``factory`` under ``name`` for use in Account.message_mask."""
    _MESSAGE_MASKS[name] = factory


def resolve_message_mask(name: str) -> MaskFactory:
    """
    Look up a registered mask factory.

    Raises:
        MaskNotFoundError: If no mask is registered under ``name``.
    """
    try:
        return _MESSAGE_MASKS[name]
    except KeyError:
        raise MaskNotFoundError(f"Unknown mask provided: {name}") from None


# =============================================================================
# Exceptions
# =============================================================================

class MaskNotFoundError(ConfigError):
    """Raised when a configured mask name isn't registered."""
    pass
