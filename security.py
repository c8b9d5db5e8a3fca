"""
Password hashing and bearer tokens

bcrypt through passlib for credentials, HS256 JWTs through python-jose for
tokens. Hashing is CPU bound, so the async helpers push it to a worker thread.
"""
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict

from fastapi.concurrency import run_in_threadpool
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import ConfigError, get_settings
from errors import AuthenticationError, ConfigurationError

JWT_ALG = "HS256"


@lru_cache(maxsize=8)
def _pwd_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def hash_password(password: str) -> str:
    return _pwd_context(get_settings().bcrypt_salt_rounds).hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return _pwd_context(get_settings().bcrypt_salt_rounds).verify(password, password_hash)


async def hash_password_async(password: str) -> str:
    return await run_in_threadpool(hash_password, password)


async def verify_password_async(password: str, password_hash: str) -> bool:
    return await run_in_threadpool(verify_password, password, password_hash)


def _require_secret() -> str:
    secret = get_settings().jwt_secret
    if not secret:
        raise ConfigurationError("JWT_SECRET is not set")
    return secret


def _token_lifetime() -> int:
    try:
        return get_settings().token_lifetime_seconds
    except ConfigError as exc:
        raise ConfigurationError(str(exc)) from exc


def check_token_config() -> None:
    """Fail with a ConfigurationError before any write if tokens cannot be issued."""
    _require_secret()
    _token_lifetime()


def create_token(user_id: str, role: str) -> str:
    """Issue a signed token whose ``sub`` claim is the user id."""
    secret = _require_secret()
    lifetime = _token_lifetime()

    issued = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "role": role,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(seconds=lifetime)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALG)


def decode_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry. Raises AuthenticationError on any failure."""
    secret = _require_secret()
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALG])
    except JWTError as exc:
        raise AuthenticationError() from exc
