# =============================================================================
# Tests for LOGIN / XOAUTH2 authentication
# =============================================================================

import base64

import pytest

from imapwire.core import ConfigError
from imapwire.imap.auth import LoginAuthenticator, XOAuth2Authenticator, authenticator_for
from imapwire.imap.channel import CommandChannel
from imapwire.imap.errors import AuthFailedError


@pytest.fixture
def channel(server):
    server.token = "ya29.token"
    transport = server.transport_factory()
    transport.connect("imap.example.com", 993, "ssl")
    channel = CommandChannel(transport)
    channel.read_greeting()
    return channel


@pytest.mark.parametrize("method, expected", [
    (None, LoginAuthenticator),
    ("login", LoginAuthenticator),
    ("LOGIN", LoginAuthenticator),
    ("oauth", XOAuth2Authenticator),
    ("xoauth2", XOAuth2Authenticator),
])
def test_authenticator_for(method, expected):
    assert isinstance(authenticator_for(method), expected)


def test_unknown_method_is_a_config_error():
    with pytest.raises(ConfigError):
        authenticator_for("kerberos")


class TestLogin:

    def test_success(self, channel):
        LoginAuthenticator().authenticate(channel, "user@example.com", "secret")
        assert channel.transport.user == "user@example.com"

    def test_rejected(self, channel):
        with pytest.raises(AuthFailedError) as excinfo:
            LoginAuthenticator().authenticate(channel, "user@example.com", "wrong")
        assert "AUTHENTICATIONFAILED" in str(excinfo.value)

    def test_credentials_are_quoted(self, channel):
        LoginAuthenticator().authenticate(channel, "user@example.com", "secret")
        assert channel.transport.received[-1] == 'A1 LOGIN "user@example.com" "secret"'


class TestXOAuth2:

    def test_success(self, server, channel):
        XOAuth2Authenticator().authenticate(channel, "user@example.com", "ya29.token")

        line = channel.transport.received[-1]
        assert line.startswith("A1 AUTHENTICATE XOAUTH2 ")
        decoded = base64.b64decode(line.split()[-1])
        assert decoded == b"user=user@example.com\x01auth=Bearer ya29.token\x01\x01"
        assert channel.transport.user == "user@example.com"

    def test_rejected_token_answers_challenge(self, channel):
        with pytest.raises(AuthFailedError):
            XOAuth2Authenticator().authenticate(channel, "user@example.com", "expired")

        # The challenge is answered with an empty line before the NO arrives
        assert channel.transport.received[-1] == ""
