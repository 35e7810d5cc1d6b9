# =============================================================================
# Transport Session
# =============================================================================
# Owns the raw duplex byte stream to the IMAP server. No protocol knowledge
# beyond "lines end with CRLF" and "literals are N raw bytes".
#
# Key responsibilities:
#   - Plain TCP, implicit TLS (ssl/tls) or in-place STARTTLS upgrade
#   - Optional HTTP CONNECT proxy tunnel (with basic auth)
#   - Buffered line/literal reads honouring the configured timeout
#
# Design notes:
#   - We buffer ourselves instead of using socket.makefile(): a file object
#     refuses further reads after a timeout, which would break IDLE keepalive
#   - Read outcomes are structured (EmptyResponseError vs
#     ConnectionClosedError) so the IDLE loop never has to inspect messages
# =============================================================================

import base64
import logging
import socket
import ssl
from typing import TYPE_CHECKING

from imapwire.imap.errors import (
    ConnectionClosedError,
    ConnectionFailedError,
    EmptyResponseError,
)

if TYPE_CHECKING:
    from imapwire.core import ProxyConfig

logger = logging.getLogger(__name__)

# Encryption modes that wrap the socket before the greeting
IMPLICIT_TLS = ("ssl", "tls")

# Every supported encryption mode
ENCRYPTION_MODES = ("none", "notls", "ssl", "tls", "starttls")


class TransportSession:
    """
    A single TCP (optionally TLS) connection to an IMAP server.

    Usage:
        >>> transport = TransportSession(timeout=30)
        >>> transport.connect("imap.example.com", 993, "ssl")
        >>> transport.read_line()
        b'* OK IMAP4rev1 Service Ready\\r\\n'
        >>> transport.close()

    Attributes:
        timeout: Read/write timeout in seconds.
        validate_cert: Whether TLS certificates are verified.
        proxy: Optional HTTP proxy configuration.
    """

    # Bytes requested per recv() call
    CHUNK_SIZE = 65536

    def __init__(
        self,
        timeout: float = 30,
        validate_cert: bool = True,
        proxy: "ProxyConfig | None" = None,
    ) -> None:
        self.timeout = timeout
        self.validate_cert = validate_cert
        self.proxy = proxy
        self.encrypted = False
        self._sock: socket.socket | None = None
        self._buffer = bytearray()

    @property
    def connected(self) -> bool:
        """True while the socket is open."""
        return self._sock is not None

    # =========================================================================
    # Connection Setup
    # =========================================================================

    def connect(self, host: str, port: int | None, encryption: str = "ssl") -> None:
        """
        Open the byte stream.

        Args:
            host: Server hostname.
            port: Server port; None picks 993 for implicit TLS, 143 otherwise.
            encryption: One of none, notls, ssl, tls, starttls. STARTTLS is
                        negotiated later by the session via starttls().

        Raises:
            ConnectionFailedError: On DNS, socket, proxy or TLS failure.
        """
        encryption = (encryption or "none").lower()
        if encryption not in ENCRYPTION_MODES:
            raise ConnectionFailedError(f"Unknown encryption mode: {encryption}")

        if port is None:
            port = 993 if encryption in IMPLICIT_TLS else 143

        self.close()
        self._buffer.clear()

        try:
            if self.proxy and self.proxy.socket:
                sock = self._open_tunnel(host, port)
            else:
                logger.debug(f"Opening socket to {host}:{port}")
                sock = socket.create_connection((host, port), timeout=self.timeout)
        except (OSError, ValueError) as e:
            raise ConnectionFailedError(f"Failed to connect to {host}:{port}: {e}") from e

        sock.settimeout(self.timeout)

        if encryption in IMPLICIT_TLS:
            try:
                sock = self._wrap(sock, host)
            except (OSError, ssl.SSLError) as e:
                sock.close()
                raise ConnectionFailedError(f"TLS handshake with {host}:{port} failed: {e}") from e

        self._sock = sock
        logger.debug(f"Transport open to {host}:{port} (encryption={encryption})")

    def starttls(self, host: str) -> None:
        """
        Upgrade the live plaintext connection to TLS in place.

        Must be called right after the server accepted STARTTLS.

        Raises:
            ConnectionFailedError: If the handshake fails.
        """
        if self._sock is None:
            raise ConnectionFailedError("Cannot start TLS on a closed transport")

        # Anything buffered before the handshake is plaintext we must not keep
        self._buffer.clear()
        try:
            self._sock = self._wrap(self._sock, host)
        except (OSError, ssl.SSLError) as e:
            self.close()
            raise ConnectionFailedError(f"STARTTLS handshake with {host} failed: {e}") from e

    def _wrap(self, sock: socket.socket, host: str) -> ssl.SSLSocket:
        """Perform the TLS handshake on ``sock``."""
        context = ssl.create_default_context()
        if not self.validate_cert:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        wrapped = context.wrap_socket(sock, server_hostname=host)
        self.encrypted = True
        return wrapped

    def _open_tunnel(self, host: str, port: int) -> socket.socket:
        """
        Connect through an HTTP proxy using CONNECT.

        Returns:
            Socket with an established tunnel to host:port.
        """
        proxy = self.proxy
        proxy_host, proxy_port = _split_proxy_address(proxy.socket)
        logger.debug(f"Tunnelling to {host}:{port} via proxy {proxy_host}:{proxy_port}")

        sock = socket.create_connection((proxy_host, proxy_port), timeout=self.timeout)
        try:
            request = [f"CONNECT {host}:{port} HTTP/1.1"]
            if proxy.request_fulluri:
                request.append(f"Host: {host}:{port}")
            if proxy.username:
                token = base64.b64encode(
                    f"{proxy.username}:{proxy.password or ''}".encode("utf-8")
                ).decode("ascii")
                request.append(f"Proxy-Authorization: Basic {token}")
            sock.sendall(("\r\n".join(request) + "\r\n\r\n").encode("utf-8"))

            reply = b""
            while b"\r\n\r\n" not in reply:
                chunk = sock.recv(4096)
                if not chunk:
                    raise ConnectionError("Proxy closed the connection during CONNECT")
                reply += chunk

            head, _, rest = reply.partition(b"\r\n\r\n")
            status_line = head.split(b"\r\n", 1)[0].decode("latin-1")
            parts = status_line.split()
            if len(parts) < 2 or not parts[1].startswith("2"):
                raise ConnectionError(f"Proxy refused tunnel: {status_line}")

            # Anything after the headers already belongs to the IMAP stream
            self._buffer.extend(rest)
        except OSError:
            sock.close()
            raise

        return sock

    def close(self) -> None:
        """Close the socket. Safe to call repeatedly."""
        if self._sock is None:
            return
        sock, self._sock = self._sock, None
        self.encrypted = False
        try:
            sock.close()
        except OSError as e:
            logger.debug(f"Error closing socket: {e}")

    def set_timeout(self, timeout: float) -> None:
        """Change the read/write timeout of the live socket."""
        self.timeout = timeout
        if self._sock is not None:
            self._sock.settimeout(timeout)

    # =========================================================================
    # I/O
    # =========================================================================

    def write(self, data: bytes) -> None:
        """
        Write raw bytes.

        Raises:
            ConnectionClosedError: If the socket is closed or the write fails.
        """
        if self._sock is None:
            raise ConnectionClosedError("connection closed")
        try:
            self._sock.sendall(data)
        except OSError as e:
            self.close()
            raise ConnectionClosedError(f"connection closed while writing: {e}") from e

    def read_line(self) -> bytes:
        """
        Read one line including its CRLF terminator.

        Raises:
            EmptyResponseError: Timeout expired with the socket still open.
            ConnectionClosedError: Peer closed or reset the connection.
        """
        while True:
            index = self._buffer.find(b"\n")
            if index != -1:
                line = bytes(self._buffer[:index + 1])
                del self._buffer[:index + 1]
                return line
            self._fill()

    def read_exact(self, size: int) -> bytes:
        """
        Read exactly ``size`` bytes (a literal payload).

        Raises:
            EmptyResponseError: Timeout expired with the socket still open.
            ConnectionClosedError: Peer closed or reset the connection.
        """
        while len(self._buffer) < size:
            self._fill()
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def _fill(self) -> None:
        """Receive the next chunk into the buffer."""
        if self._sock is None:
            raise ConnectionClosedError("connection closed")
        try:
            chunk = self._sock.recv(self.CHUNK_SIZE)
        except TimeoutError as e:
            raise EmptyResponseError(f"empty response after {self.timeout}s") from e
        except OSError as e:
            self.close()
            raise ConnectionClosedError(f"connection closed: {e}") from e

        if not chunk:
            self.close()
            raise ConnectionClosedError("connection closed by server")

        self._buffer.extend(chunk)


def _split_proxy_address(address: str) -> tuple[str, int]:
    """
    Parse a proxy socket address.

    Accepts "host:port" or "tcp://host:port".
    """
    if "://" in address:
        address = address.split("://", 1)[1]
    host, _, port = address.rstrip("/").rpartition(":")
    if not host or not port.isdigit():
        raise ValueError(f"Invalid proxy address: {address!r}")
    return host, int(port)
