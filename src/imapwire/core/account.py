# =============================================================================
# Account Model
# =============================================================================
# Everything one IMAP session needs to know, built once and handed to the
# IMAPClient at construction. There are no process-wide defaults: two clients
# with two Account objects never influence each other.
#
# Passwords may be left empty here. They are then looked up in the system
# keyring at connect time using the 'keyring' library, so credentials can
# stay out of config files.
# =============================================================================

from dataclasses import dataclass, field

# Accepted values for Account.encryption
ENCRYPTION_MODES = ("none", "notls", "ssl", "tls", "starttls")

# Message addressing modes: sequence numbers or UIDs
SEQUENCE_MODES = ("msgn", "uid")


@dataclass
class ProxyConfig:
    """
    HTTP proxy used to tunnel the IMAP connection (CONNECT).

    Attributes:
        socket: Proxy address, "host:port" or "tcp://host:port".
                None means no proxy.
        request_fulluri: Send a Host header naming the tunnel target.
        username: Optional proxy username (basic auth).
        password: Optional proxy password.
    """
    socket: str | None = None
    request_fulluri: bool = False
    username: str | None = None
    password: str | None = None


@dataclass
class Account:
    """
    Connection and session settings for one IMAP account.

    Attributes:
        name: Unique identifier for this account (config key, keyring service).
        host: IMAP server hostname.
        port: IMAP port. None picks 993 for ssl/tls and 143 otherwise.
        protocol: Protocol variant. "imap", "imap4" and "imap4rev1" use the
                  native engine; other names (e.g. "legacy-imap", "pop3")
                  select the legacy variant, which has no backend here.
        encryption: "none", "notls", "ssl", "tls" or "starttls".
        validate_cert: Verify the server's TLS certificate.
        proxy: Optional HTTP CONNECT proxy.
        timeout: Socket timeout in seconds.

        username: Login name.
        password: Password, or the bearer token for oauth. Empty means
                  "look it up in the keyring".
        authentication: None/"login" for LOGIN, "oauth" for XOAUTH2.

        sequence: Default message addressing, "msgn" or "uid".
        delimiter: Folder delimiter used when the server doesn't report one.
        debug: Log every protocol line sent and received.
        uid_cache: Remember msgn -> uid mappings per folder.
        message_mask: Name of the registered message mask.

    Example:
        >>> account = Account(
        ...     name="work",
        ...     host="imap.example.com",
        ...     username="user@example.com",
        ...     encryption="starttls",
        ...     port=143,
        ... )
    """

    name: str = "default"
    host: str = "localhost"
    port: int | None = 993
    protocol: str = "imap"
    encryption: str = "ssl"
    validate_cert: bool = True
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    timeout: float = 30

    # Credentials
    username: str = ""
    password: str = field(default="", repr=False)
    authentication: str | None = None

    # Session options
    sequence: str = "msgn"
    delimiter: str = "/"
    debug: bool = False
    uid_cache: bool = True
    message_mask: str = "default"

    def __post_init__(self) -> None:
        """
        Validate enumerated options.

        Raises:
            ConfigError: For unknown encryption or sequence modes.
        """
        self.encryption = (self.encryption or "none").lower()
        if self.encryption not in ENCRYPTION_MODES:
            raise ConfigError(
                f"Account {self.name!r}: unknown encryption {self.encryption!r} "
                f"(expected one of {', '.join(ENCRYPTION_MODES)})"
            )

        self.sequence = self.sequence.lower()
        if self.sequence not in SEQUENCE_MODES:
            raise ConfigError(
                f"Account {self.name!r}: unknown sequence mode {self.sequence!r}"
            )

        if isinstance(self.proxy, dict):
            self.proxy = ProxyConfig(**self.proxy)

    @property
    def keyring_service(self) -> str:
        """
        Service name used for keyring lookups.

            keyring set imapwire:work user@example.com
        """
        return f"imapwire:{self.name}"

    @property
    def uses_uid(self) -> bool:
        return self.sequence == "uid"

    def __str__(self) -> str:
        return f"{self.name} <{self.username}@{self.host}>"


# =============================================================================
# Exceptions
# =============================================================================

class ConfigError(Exception):
    """Raised for invalid configuration values or files."""
    pass
