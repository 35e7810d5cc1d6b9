# =============================================================================
# Authentication
# =============================================================================
# Two ways to turn a connected channel into an authenticated one:
#
#   - LoginAuthenticator:   LOGIN "user" "password"
#   - XOAuth2Authenticator: AUTHENTICATE XOAUTH2 <base64 bearer token>
#
# Both raise AuthFailedError on a negative status. The session layer wraps
# that into ConnectionFailedError so callers see one failure category for
# "could not establish a usable session".
# =============================================================================

import base64
import logging
from typing import TYPE_CHECKING

from imapwire.core.account import ConfigError
from imapwire.imap.channel import ResponseLine, quote
from imapwire.imap.errors import AuthFailedError, CommandFailedError

if TYPE_CHECKING:
    from imapwire.imap.channel import CommandChannel

logger = logging.getLogger(__name__)


class Authenticator:
    """Base class for authentication variants."""

    name = ""

    def authenticate(self, channel: "CommandChannel", username: str, secret: str) -> None:
        """
        Authenticate on ``channel``.

        Raises:
            AuthFailedError: If the server rejects the credentials.
        """
        raise NotImplementedError


class LoginAuthenticator(Authenticator):
    """Plaintext LOGIN with username and password."""

    name = "login"

    def authenticate(self, channel: "CommandChannel", username: str, secret: str) -> None:
        logger.debug(f"Authenticating as {username} (LOGIN)")
        try:
            channel.command("LOGIN", quote(username), quote(secret), sensitive=True)
        except CommandFailedError as e:
            raise AuthFailedError(f"Authentication failed for {username}: {e.text}") from e


class XOAuth2Authenticator(Authenticator):
    """
    Token-based authentication (SASL XOAUTH2).

    The initial response is sent inline. If the token is rejected the server
    sends a "+" challenge with a base64 JSON error; we answer with an empty
    line and the server completes with NO.
    """

    name = "xoauth2"

    def authenticate(self, channel: "CommandChannel", username: str, secret: str) -> None:
        logger.debug(f"Authenticating as {username} (XOAUTH2)")
        payload = f"user={username}\x01auth=Bearer {secret}\x01\x01"
        encoded = base64.b64encode(payload.encode("utf-8")).decode("ascii")

        try:
            channel.command(
                "AUTHENTICATE XOAUTH2",
                encoded,
                on_continuation=self._on_challenge,
                sensitive=True,
            )
        except CommandFailedError as e:
            raise AuthFailedError(f"Token authentication failed for {username}: {e.text}") from e

    def _on_challenge(self, line: ResponseLine) -> bytes:
        try:
            detail = base64.b64decode(line.data).decode("utf-8", errors="replace")
        except ValueError:
            detail = line.data
        logger.debug(f"XOAUTH2 challenge: {detail}")
        return b""


# Authentication method names accepted in account configuration
_AUTHENTICATORS: dict[str | None, type[Authenticator]] = {
    None: LoginAuthenticator,
    "login": LoginAuthenticator,
    "oauth": XOAuth2Authenticator,
    "xoauth2": XOAuth2Authenticator,
}


def authenticator_for(method: str | None) -> Authenticator:
    """
    Resolve the authenticator for a configured method name.

    Raises:
        ConfigError: For unknown method names.
    """
    key = method.lower() if method else None
    try:
        return _AUTHENTICATORS[key]()
    except KeyError:
        raise ConfigError(f"Unknown authentication method: {method}") from None
