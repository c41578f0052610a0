"""Session token verification.

Tokens are issued at login by the account system and delivered to the
browser as an httpOnly cookie. This service only turns a token into the
user id it was issued for; it never issues tokens itself.
"""
import logging
from typing import Iterable, Mapping, Optional

import jwt

from app.config import get_config
from app.users.schemas import is_valid_id

logger = logging.getLogger(__name__)

# Claims that may carry the user id, in lookup order.
USER_ID_CLAIMS = ("userId", "id", "_id", "sub")


class AuthenticationError(Exception):
    """Missing, malformed, expired, or otherwise unusable session token."""


class TokenVerifier:
    """Verifies signed session tokens and extracts the user id."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        cookie_names: Iterable[str] = ("jwt", "token"),
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.cookie_names = tuple(cookie_names)

    @classmethod
    def from_config(cls) -> "TokenVerifier":
        config = get_config()
        return cls(
            secret_key=config.secrets.jwt.secret_key,
            algorithm=config.secrets.jwt.algorithm,
            cookie_names=config.auth.cookie_names,
        )

    def token_from_cookies(self, cookies: Mapping[str, str]) -> Optional[str]:
        """Return the first session token found among the configured cookies."""
        for name in self.cookie_names:
            token = cookies.get(name)
            if token:
                return token
        return None

    def verify(self, token: Optional[str]) -> str:
        """Verify *token* and return the user id it carries.

        Raises:
            AuthenticationError: If the token is missing, invalid, expired,
                or has no user id claim holding a well-formed id.
        """
        if not token:
            raise AuthenticationError("Authentication token required")

        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Authentication token expired")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Token rejected: {e}")
            raise AuthenticationError("Invalid authentication token")

        for claim in USER_ID_CLAIMS:
            user_id = claims.get(claim)
            if not user_id:
                continue
            if not is_valid_id(user_id):
                logger.warning(f"Token verified but its {claim} claim is not a valid user id")
                raise AuthenticationError("Invalid token payload")
            return user_id

        logger.warning("Token verified but carries no user id claim")
        raise AuthenticationError("Invalid token payload")

    def verify_cookies(self, cookies: Mapping[str, str]) -> str:
        """Shortcut for ``verify(token_from_cookies(cookies))``."""
        return self.verify(self.token_from_cookies(cookies))
