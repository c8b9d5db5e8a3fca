"""Contact request handlers. One request per email; only isRead is mutable."""
import asyncio
from typing import Any, Dict, Mapping, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from commands import CreateContactCommand, UpdateContactCommand, parse_command
from database import CONTACTS, NEWEST_FIRST, create_document, get_documents, now, require_object_id
from errors import ConflictError, NotFoundError, ValidationError, envelope_errors
from logging_config import get_logger
from normalize import clean_search, contains_pattern, page_request
from responses import send_response
from schemas import Contact, ContactMeta

logger = get_logger("handlers.contacts")

ALREADY_SENT = "Request from this email already exists"
UNREAD_FIRST = [("is_read", ASCENDING)] + NEWEST_FIRST


def request_meta(headers: Mapping[str, str], peer_host: Optional[str] = None) -> ContactMeta:
    """Origin IP (first X-Forwarded-For entry, else the peer) and user agent."""
    forwarded = headers.get("x-forwarded-for") or ""
    ip = forwarded.split(",")[0].strip() or (peer_host or "")
    return ContactMeta(ip=ip, user_agent=str(headers.get("user-agent") or ""))


def serialize_contact(doc: Dict[str, Any], include_meta: bool = False) -> Dict[str, Any]:
    data = {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "message": doc.get("message"),
        "isRead": doc.get("is_read", False),
        "createdAt": doc.get("created_at"),
        "updatedAt": doc.get("updated_at"),
    }
    if include_meta:
        meta = doc.get("meta") or {}
        data["meta"] = {"ip": meta.get("ip", ""), "userAgent": meta.get("user_agent", "")}
    return data


@envelope_errors
async def create_contact(db, payload: Any, meta: ContactMeta):
    cmd = parse_command(CreateContactCommand, payload)

    if await db[CONTACTS].find_one({"email": cmd.email}, {"_id": 1}):
        raise ConflictError(ALREADY_SENT)

    contact = parse_command(Contact, {
        "name": cmd.name,
        "email": cmd.email,
        "message": cmd.message,
        "meta": meta.model_dump(),
    })
    try:
        doc = await create_document(db, CONTACTS, contact)
    except DuplicateKeyError as exc:
        raise ConflictError(ALREADY_SENT) from exc
    logger.info("Contact request %s received", doc["_id"])
    return send_response(201, "Contact request created", {"contact": serialize_contact(doc)})


@envelope_errors
async def list_contacts(
    db,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    is_read: Optional[str] = None,
):
    paging = page_request(page, limit)
    term = clean_search(search)

    query: Dict[str, Any] = {}
    if is_read == "true":
        query["is_read"] = True
    elif is_read == "false":
        query["is_read"] = False
    if term:
        pattern = contains_pattern(term)
        query["$or"] = [{"name": pattern}, {"email": pattern}, {"message": pattern}]

    total, docs = await asyncio.gather(
        db[CONTACTS].count_documents(query),
        get_documents(db, CONTACTS, query, sort=UNREAD_FIRST, skip=paging.skip, limit=paging.limit),
    )
    return send_response(200, "OK", {
        "items": [serialize_contact(doc) for doc in docs],
        "pagination": paging.meta(total),
    })


@envelope_errors
async def get_contact(db, contact_id: str):
    oid = require_object_id(contact_id, "contact")
    doc = await db[CONTACTS].find_one({"_id": oid})
    if not doc:
        raise NotFoundError("Contact not found")
    return send_response(200, "OK", {"contact": serialize_contact(doc, include_meta=True)})


@envelope_errors
async def update_contact(db, contact_id: str, payload: Any):
    cmd = parse_command(UpdateContactCommand, payload)
    if "is_read" not in cmd.model_fields_set:
        raise ValidationError("Nothing to update")

    oid = require_object_id(contact_id, "contact")
    doc = await db[CONTACTS].find_one_and_update(
        {"_id": oid},
        {"$set": {"is_read": cmd.is_read, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFoundError("Contact not found")
    return send_response(200, "Contact updated", {"contact": serialize_contact(doc)})
