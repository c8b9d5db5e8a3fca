"""User handlers: registration, login, profile and admin user management."""
import asyncio
from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import Identity
from commands import (
    CreateUserCommand,
    LoginCommand,
    RegisterCommand,
    UpdateUserCommand,
    parse_command,
)
from database import (
    NEWEST_FIRST,
    USERS,
    create_document,
    get_documents,
    now,
    require_object_id,
)
from errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    envelope_errors,
)
from logging_config import get_logger
from normalize import clean_search, contains_pattern, page_request
from responses import send_response
from schemas import User
from security import (
    check_token_config,
    create_token,
    hash_password_async,
    verify_password_async,
)

logger = get_logger("handlers.users")

EMAIL_TAKEN = "User with this email already exists"
INVALID_CREDENTIALS = "Invalid email or password"
HIDE_SECRET = {"password_hash": 0}


def serialize_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Public user fields. The password hash is never included."""
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "role": doc.get("role", "user"),
        "createdAt": doc.get("created_at"),
        "updatedAt": doc.get("updated_at"),
    }


async def _insert_user(db, name: str, email: str, password: str, role: str) -> Dict[str, Any]:
    if await db[USERS].find_one({"email": email}, {"_id": 1}):
        raise ConflictError(EMAIL_TAKEN)

    password_hash = await hash_password_async(password)
    user = parse_command(User, {"name": name, "email": email, "password_hash": password_hash, "role": role})
    try:
        return await create_document(db, USERS, user)
    except DuplicateKeyError as exc:
        # Lost a race with a concurrent insert of the same email.
        raise ConflictError(EMAIL_TAKEN) from exc


@envelope_errors
async def register(db, payload: Any):
    cmd = parse_command(RegisterCommand, payload)
    check_token_config()

    user = await _insert_user(db, cmd.name, cmd.email, cmd.password, "user")
    token = create_token(str(user["_id"]), user["role"])
    logger.info("Registered user %s", user["_id"])
    return send_response(201, "Registered", {"token": token, "user": serialize_user(user)})


@envelope_errors
async def login(db, payload: Any):
    cmd = parse_command(LoginCommand, payload)
    check_token_config()

    # Same failure for an unknown email and a wrong password.
    user = await db[USERS].find_one({"email": cmd.email})
    if not user or not await verify_password_async(cmd.password, user.get("password_hash", "")):
        raise AuthenticationError(INVALID_CREDENTIALS)

    token = create_token(str(user["_id"]), user.get("role", "user"))
    return send_response(200, "Logged in", {"token": token, "user": serialize_user(user)})


@envelope_errors
async def profile(identity: Identity):
    return send_response(200, "OK", {"user": identity.to_dict()})


@envelope_errors
async def create_user(db, payload: Any):
    cmd = parse_command(CreateUserCommand, payload)
    user = await _insert_user(db, cmd.name, cmd.email, cmd.password, cmd.role or "user")
    logger.info("Admin created user %s with role %s", user["_id"], user["role"])
    return send_response(201, "User created", {"user": serialize_user(user)})


@envelope_errors
async def list_users(db, page: Optional[str] = None, limit: Optional[str] = None, search: Optional[str] = None):
    paging = page_request(page, limit)
    term = clean_search(search)

    query: Dict[str, Any] = {}
    if term:
        query["$or"] = [{"name": contains_pattern(term)}, {"email": contains_pattern(term)}]

    total, docs = await asyncio.gather(
        db[USERS].count_documents(query),
        get_documents(
            db, USERS, query,
            sort=NEWEST_FIRST, skip=paging.skip, limit=paging.limit, projection=HIDE_SECRET,
        ),
    )
    return send_response(200, "OK", {
        "items": [serialize_user(doc) for doc in docs],
        "pagination": paging.meta(total),
    })


@envelope_errors
async def get_user(db, user_id: str):
    oid = require_object_id(user_id, "user")
    user = await db[USERS].find_one({"_id": oid}, HIDE_SECRET)
    if not user:
        raise NotFoundError("User not found")
    return send_response(200, "OK", {"user": serialize_user(user)})


@envelope_errors
async def update_user(db, user_id: str, payload: Any):
    cmd = parse_command(UpdateUserCommand, payload)
    supplied = cmd.model_fields_set
    if not supplied:
        raise ValidationError("Nothing to update")

    oid = require_object_id(user_id, "user")
    if not await db[USERS].find_one({"_id": oid}, {"_id": 1}):
        raise NotFoundError("User not found")

    changes: Dict[str, Any] = {}
    if "name" in supplied:
        changes["name"] = cmd.name
    if "email" in supplied:
        if await db[USERS].find_one({"email": cmd.email, "_id": {"$ne": oid}}, {"_id": 1}):
            raise ConflictError(EMAIL_TAKEN)
        changes["email"] = cmd.email
    if "password" in supplied:
        changes["password_hash"] = await hash_password_async(cmd.password)
    if "role" in supplied:
        changes["role"] = cmd.role
    changes["updated_at"] = now()

    try:
        user = await db[USERS].find_one_and_update(
            {"_id": oid},
            {"$set": changes},
            projection=HIDE_SECRET,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError as exc:
        raise ConflictError(EMAIL_TAKEN) from exc
    if not user:
        raise NotFoundError("User not found")

    return send_response(200, "User updated", {"user": serialize_user(user)})


@envelope_errors
async def delete_user(db, user_id: str):
    oid = require_object_id(user_id, "user")
    result = await db[USERS].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFoundError("User not found")
    logger.info("Deleted user %s", user_id)
    return send_response(200, "User deleted", {"deletedUserId": user_id})
