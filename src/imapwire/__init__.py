# =============================================================================
# imapwire: A Synchronous IMAP Session Engine
# =============================================================================
#
# imapwire speaks IMAP4rev1 over a single blocking connection: TLS or
# STARTTLS, LOGIN or XOAUTH2, folder trees, quota, and IDLE push
# notifications that heal themselves after dropped connections.
#
#   >>> from imapwire import Account, IMAPClient
#   >>> with IMAPClient(Account(host="imap.example.com", username="me")) as client:
#   ...     for folder in client.get_folders():
#   ...         print(folder.full_name)
#
# =============================================================================

__version__ = "0.1.0"
__app_name__ = "imapwire"

# imapwire.imap goes first: the core models import its leaf modules
from imapwire.imap import IMAPClient, IdleEvent, IdleMonitor, SessionListener
from imapwire.core import Account, Address, Folder, MessageOverview, ProxyConfig
from imapwire.masks import MessageMask, register_message_mask

__all__ = [
    "__version__",
    "__app_name__",
    "Account",
    "ProxyConfig",
    "Address",
    "Folder",
    "MessageOverview",
    "IMAPClient",
    "IdleMonitor",
    "IdleEvent",
    "SessionListener",
    "MessageMask",
    "register_message_mask",
]
