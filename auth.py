import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from database import find_by_id, serialize
from errors import AuthError, ForbiddenError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# auto_error is off so a missing token raises AuthError with the usual JSON body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_token(user_id: str, settings) -> str:
    expire = datetime.now(timezone.utc) + settings.token_lifetime
    return jwt.encode({"id": user_id, "exp": expire}, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str, secret: str) -> str:
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError as e:
        raise AuthError() from e
    user_id = payload.get("id")
    if not user_id:
        raise AuthError()
    return user_id


def get_current_user(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Dict[str, Any]:
    """Resolve the caller from a bearer token, falling back to the ``token`` cookie."""
    token = token or request.cookies.get("token")
    if not token:
        raise AuthError()

    user_id = decode_token(token, request.app.state.settings.jwt_secret)
    user = find_by_id("user", user_id)
    if not user:
        logger.info("Token for unknown user %s rejected", user_id)
        raise AuthError()
    return serialize(user)


def authorize_roles(*roles: str):
    def guard(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if user.get("role") not in roles:
            logger.info("Role %s denied, requires %s", user.get("role"), roles)
            raise ForbiddenError(f"Role ({user.get('role')}) is not allowed to access this resource")
        return user
    return guard


require_admin = authorize_roles("admin")


def is_admin(user: Dict[str, Any]) -> bool:
    return user.get("role") == "admin"


def ensure_owner_or_admin(user: Dict[str, Any], owner_id: Optional[str], message: str) -> None:
    if user["id"] != owner_id and not is_admin(user):
        raise ForbiddenError(message)
