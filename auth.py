"""
Authentication and authorization gates

Both are FastAPI dependencies and both fail closed. ``get_current_user``
resolves the bearer token to a stored user and attaches the identity to
``request.state.user``; ``require_admin`` composes on top of it and checks
the role.
"""
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request

from database import USERS, get_db, parse_object_id
from errors import AuthenticationError, AuthorizationError
from logging_config import get_logger
from security import decode_token

logger = get_logger("auth")

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Identity:
    id: str
    name: str
    email: str
    role: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationError()
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError()
    return token


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    db=Depends(get_db),
) -> Identity:
    token = extract_bearer_token(authorization)
    claims = decode_token(token)

    user_id = parse_object_id(claims.get("sub"))
    if user_id is None:
        logger.debug("Token without a usable sub claim")
        raise AuthenticationError()

    user = await db[USERS].find_one({"_id": user_id}, {"password_hash": 0})
    if not user:
        logger.debug("Token subject %s no longer exists", user_id)
        raise AuthenticationError()

    identity = Identity(
        id=str(user["_id"]),
        name=str(user.get("name", "")),
        email=str(user.get("email", "")),
        role=str(user.get("role", "user")),
    )
    request.state.user = identity
    return identity


def check_admin(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise AuthenticationError()
    if identity.role != "admin":
        raise AuthorizationError()
    return identity


async def require_admin(identity: Identity = Depends(get_current_user)) -> Identity:
    return check_admin(identity)
