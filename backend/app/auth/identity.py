"""Bearer credential verification for live connections and REST calls.

Tokens are JWTs signed with the configured secret. The payload carries
the user under a ``user`` claim::

    {"user": {"id": "<user id>", "role": "user"}, "exp": 1700000000}

A flat ``user_id`` claim is accepted as well. Verification succeeds only
if the signature and expiry are valid AND the user still exists.
"""
import logging
from typing import Optional

import jwt

from app.errors import InvalidCredentialError, UnauthenticatedError
from app.store import DocumentStore
from app.store.schemas import UserRecord

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def _strip_bearer(credential: str) -> str:
    credential = credential.strip()
    if credential.startswith(BEARER_PREFIX):
        credential = credential[len(BEARER_PREFIX):].strip()
    return credential


class IdentityVerifier:
    """Resolves a presented credential string to the user it was issued for."""

    def __init__(self, store: DocumentStore, secret_key: str, algorithm: str = "HS256"):
        self.store = store
        self.secret_key = secret_key
        self.algorithm = algorithm

    def decode_user_id(self, credential: Optional[str]) -> str:
        """Validate the token itself and return the user id it names.

        Raises:
            UnauthenticatedError: No credential, or a blank one.
            InvalidCredentialError: Malformed, expired or wrongly signed token.
        """
        if credential is None or not _strip_bearer(credential):
            raise UnauthenticatedError()
        token = _strip_bearer(credential)
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise InvalidCredentialError("Authentication error: Token expired")
        except jwt.InvalidTokenError as e:
            logger.debug("Rejected token: %s", e)
            raise InvalidCredentialError()

        user_claim = payload.get("user")
        user_id = user_claim.get("id") if isinstance(user_claim, dict) else payload.get("user_id")
        if not user_id or not isinstance(user_id, str):
            raise InvalidCredentialError("Authentication error: Token has no user")
        return user_id

    async def verify(self, credential: Optional[str]) -> UserRecord:
        """Return the user a credential was issued for.

        Raises:
            UnauthenticatedError: No credential, or a blank one.
            InvalidCredentialError: Verification failed or the user no longer exists.
        """
        user_id = self.decode_user_id(credential)
        user = await self.store.find_user_by_id(user_id)
        if user is None:
            raise InvalidCredentialError("Authentication error: User not found")
        return user
