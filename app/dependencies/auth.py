"""
Auth gate: resolves the caller behind a bearer token on each request.

NoToken -> TokenPresent -> Verified | Rejected. The reason for a rejection
(missing, expired, invalid, unknown_user, inactive) is logged and kept on
the Unauthenticated error, but clients only see a generic message.
"""
import logging
from typing import Iterable, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import PlanRequired, TokenExpired, TokenInvalid, Unauthenticated
from app.db.session import get_db
from app.models.user import User
from app.utils.auth import TokenService

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "Not authorized"


def get_token_service() -> TokenService:
    return TokenService(get_settings())


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an 'Authorization: Bearer <token>' header value."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    # Frontends sometimes send the string form of an unset variable
    if not token or token.lower() in ["null", "undefined", "none"]:
        return None
    return token


def authenticate(token: Optional[str], db: Session, tokens: TokenService) -> User:
    """Resolve a token to an active user or raise Unauthenticated."""
    if not token:
        logger.info("Auth rejected: missing token")
        raise Unauthenticated("Not authorized - token missing", reason="missing")

    try:
        user_id = tokens.verify(token)
    except TokenExpired:
        logger.info("Auth rejected: token expired")
        raise Unauthenticated(GENERIC_MESSAGE, reason="expired")
    except TokenInvalid as e:
        logger.info("Auth rejected: invalid token (%s)", e)
        raise Unauthenticated(GENERIC_MESSAGE, reason="invalid")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.info("Auth rejected: user %s no longer exists", user_id)
        raise Unauthenticated(GENERIC_MESSAGE, reason="unknown_user")
    if not user.is_active:
        logger.info("Auth rejected: user %s is deactivated", user_id)
        raise Unauthenticated(GENERIC_MESSAGE, reason="inactive")
    return user


def authenticate_optional(token: Optional[str], db: Session, tokens: TokenService) -> Optional[User]:
    """Same as authenticate() but never fails; None stands for an anonymous caller."""
    try:
        return authenticate(token, db, tokens)
    except Unauthenticated:
        return None


def check_plan(user: User, allowed_plans: Iterable[str]) -> None:
    allowed = tuple(allowed_plans)
    if user.plan_tier not in allowed:
        raise PlanRequired(f"This feature requires the {' or '.join(allowed)} plan")


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """FastAPI dependency for protected routes."""
    return authenticate(extract_bearer_token(authorization), db, tokens)


def get_optional_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[User]:
    """FastAPI dependency for public routes that may still know the caller."""
    return authenticate_optional(extract_bearer_token(authorization), db, tokens)


def require_plan(*plans: str):
    """Dependency factory: Depends(require_plan("pro", "enterprise"))."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        check_plan(user, plans)
        return user

    return dependency
