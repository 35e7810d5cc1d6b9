# =============================================================================
# imapwire Core Module
# =============================================================================
# Domain models shared by the IMAP engine and its callers:
#   - Account: Connection and session settings for one IMAP account
#   - Folder: A mailbox folder as returned by one LIST call
#   - MessageOverview: Header-level view of a fetched message
#   - Address: A parsed mail address from a header
#
# Only leaf modules of imapwire.imap (errors, utf7) are imported from here, so
# the models can be imported anywhere without circular imports.
# =============================================================================

from imapwire.core.account import Account, ConfigError, ProxyConfig
from imapwire.core.address import Address
from imapwire.core.folder import Folder
from imapwire.core.message import MessageOverview

__all__ = [
    "Account",
    "ProxyConfig",
    "ConfigError",
    "Address",
    "Folder",
    "MessageOverview",
]
