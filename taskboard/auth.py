import hmac
import logging

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from . import config
from .db import UserRecord, get_db
from .errors import Forbidden, Unauthorized
from .utils import hmac_hex

logger = logging.getLogger(__name__)


def create_token(user_id: str) -> str:
    """Signed bearer token: ``<user id>.<hmac>``."""
    return f"{user_id}.{hmac_hex(config.SECRET_KEY, user_id)}"


def read_token(token: str) -> str:
    user_id, sep, signature = token.rpartition(".")
    if not sep or not user_id:
        raise Unauthorized("invalid_token")
    if not hmac.compare_digest(signature, hmac_hex(config.SECRET_KEY, user_id)):
        raise Unauthorized("invalid_token")
    return user_id


def get_current_user(
    authorization: str = Header(default=""),
    db: Session = Depends(get_db),
) -> UserRecord:
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise Unauthorized("Authentication required")
    user_id = read_token(authorization[len(prefix) :].strip())
    user = db.get(UserRecord, user_id)
    if user is None:
        raise Unauthorized("User not found or token invalid")
    return user


def require_admin(user: UserRecord) -> None:
    if user.role != "admin":
        raise Forbidden("Admin privileges required")


def send_password_reset(email: str, reset_url: str) -> None:
    """Mail delivery is handled outside this service; record the request."""
    logger.info("Password reset link issued for %s", email)
    logger.debug("Reset link for %s: %s", email, reset_url)
