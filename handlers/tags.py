"""Tag handlers. Tag names are stored lowercased and are unique."""
from typing import Any, Dict

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from commands import CreateTagCommand, UpdateTagCommand, parse_command
from database import TAGS, create_document, get_documents, now, require_object_id
from errors import ConflictError, NotFoundError, ValidationError, envelope_errors
from logging_config import get_logger
from responses import send_response
from schemas import Tag

logger = get_logger("handlers.tags")

NAME_TAKEN = "Tag with this name already exists"


def serialize_tag(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "color": doc.get("color"),
        "createdAt": doc.get("created_at"),
        "updatedAt": doc.get("updated_at"),
    }


def tag_ref(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Compact form used when a tag is expanded inside a project."""
    return {"id": str(doc["_id"]), "name": doc.get("name"), "color": doc.get("color")}


@envelope_errors
async def create_tag(db, payload: Any):
    cmd = parse_command(CreateTagCommand, payload)

    if await db[TAGS].find_one({"name": cmd.name}, {"_id": 1}):
        raise ConflictError(NAME_TAKEN)

    tag = parse_command(Tag, {"name": cmd.name, "color": cmd.color})
    try:
        doc = await create_document(db, TAGS, tag)
    except DuplicateKeyError as exc:
        raise ConflictError(NAME_TAKEN) from exc
    return send_response(201, "Tag created", {"tag": serialize_tag(doc)})


@envelope_errors
async def list_tags(db):
    docs = await get_documents(db, TAGS, sort=[("name", ASCENDING)])
    return send_response(200, "OK", {"tags": [serialize_tag(doc) for doc in docs]})


@envelope_errors
async def get_tag(db, tag_id: str):
    oid = require_object_id(tag_id, "tag")
    doc = await db[TAGS].find_one({"_id": oid})
    if not doc:
        raise NotFoundError("Tag not found")
    return send_response(200, "OK", {"tag": serialize_tag(doc)})


@envelope_errors
async def update_tag(db, tag_id: str, payload: Any):
    cmd = parse_command(UpdateTagCommand, payload)
    supplied = cmd.model_fields_set
    if not supplied:
        raise ValidationError("Nothing to update")

    oid = require_object_id(tag_id, "tag")
    if not await db[TAGS].find_one({"_id": oid}, {"_id": 1}):
        raise NotFoundError("Tag not found")

    changes: Dict[str, Any] = {"updated_at": now()}
    if "name" in supplied:
        if await db[TAGS].find_one({"name": cmd.name, "_id": {"$ne": oid}}, {"_id": 1}):
            raise ConflictError(NAME_TAKEN)
        changes["name"] = cmd.name
    if "color" in supplied:
        changes["color"] = cmd.color

    try:
        doc = await db[TAGS].find_one_and_update(
            {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError as exc:
        raise ConflictError(NAME_TAKEN) from exc
    if not doc:
        raise NotFoundError("Tag not found")
    return send_response(200, "Tag updated", {"tag": serialize_tag(doc)})


@envelope_errors
async def delete_tag(db, tag_id: str):
    # Projects keep the dangling id; reads drop it when expanding tags.
    oid = require_object_id(tag_id, "tag")
    result = await db[TAGS].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFoundError("Tag not found")
    logger.info("Deleted tag %s", tag_id)
    return send_response(200, "Tag deleted", {"deletedTagId": tag_id})
