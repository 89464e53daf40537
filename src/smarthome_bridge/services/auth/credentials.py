from __future__ import annotations

import hmac
import logging

__all__ = ["CredentialStore"]

_log = logging.getLogger("smarthome_bridge.auth.credentials")


def _same(expected: str, supplied: str) -> bool:
    # lone surrogates compare unequal instead of raising
    return hmac.compare_digest(
        expected.encode("utf-8", "surrogatepass"),
        supplied.encode("utf-8", "surrogatepass"),
    )


class CredentialStore:
    """Configured resource owner and OAuth client; answers equality checks only."""

    def __init__(
        self,
        username: str = "",
        password: str = "",
        client_id: str = "",
        client_secret: str = "",
    ) -> None:
        self._username = username
        self._password = password
        self._client_id = client_id
        self._client_secret = client_secret

    def configure_user(self, username: str, password: str) -> None:
        self._username = username
        self._password = password

    def configure_client(self, client_id: str, client_secret: str) -> None:
        self._client_id = client_id
        self._client_secret = client_secret

    def is_valid_user(self, username: str, password: str) -> bool:
        if not isinstance(username, str) or not isinstance(password, str):
            return False
        # evaluate both so timing does not tell which one was wrong
        user_ok = _same(self._username, username)
        password_ok = _same(self._password, password)
        if not user_ok:
            _log.debug("username does not match")
            return False
        if not password_ok:
            _log.debug("password does not match for user=%s", username)
            return False
        return True

    def is_valid_client(self, client_id: str, client_secret: str | None = None) -> bool:
        if not isinstance(client_id, str):
            return False
        if not _same(self._client_id, client_id):
            _log.debug("client_id does not match")
            return False
        if client_secret is None:
            return True
        if not isinstance(client_secret, str) or not _same(self._client_secret, client_secret):
            _log.debug("client_secret does not match for client_id=%s", client_id)
            return False
        return True
