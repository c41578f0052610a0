"""FastAPI dependencies for authenticated routes."""
import logging

from fastapi import HTTPException, Request

from .service import AuthenticationError, TokenVerifier

logger = logging.getLogger(__name__)


def get_current_user_id(request: Request) -> str:
    """Resolve the caller's user id from the session cookie.

    Raises:
        HTTPException 401: If the cookie is missing or the token is invalid.
    """
    try:
        return TokenVerifier.from_config().verify_cookies(request.cookies)
    except AuthenticationError as e:
        logger.info(f"[auth] Rejected request to {request.url.path}: {e}")
        raise HTTPException(status_code=401, detail=str(e))
