from __future__ import annotations

from typing import Mapping, Optional

from ..logging import get_logger

LOG = get_logger("web-auth")


class AuthError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class TokenAuthenticator:
    """Resolve ``Authorization: Bearer <token>`` to an owner identity.

    Tokens are issued elsewhere; this only maps configured tokens to owners.
    """

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens = dict(tokens)

    def owner_for(self, authorization: Optional[str]) -> str:
        parts = (authorization or "").split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthError(401, "Access token required")
        owner = self._tokens.get(parts[1])
        if owner is None:
            LOG.warning("Rejected request with unknown bearer token")
            raise AuthError(403, "Invalid token")
        return owner
