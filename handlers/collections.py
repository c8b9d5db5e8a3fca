"""
Project collection handlers

Collections hold project ids supplied directly by the caller. Every id must
name an existing project at write time. Names are unique ignoring case,
enforced through the lowercased ``name_key`` field.
"""
import asyncio
from typing import Any, Dict, Iterable, List, Optional

from bson.objectid import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from commands import CreateCollectionCommand, UpdateCollectionCommand, parse_command
from database import (
    COLLECTIONS,
    NEWEST_FIRST,
    PROJECTS,
    create_document,
    get_documents,
    get_documents_by_ids,
    now,
    require_object_id,
)
from errors import ConflictError, NotFoundError, ValidationError, envelope_errors
from handlers.projects import TagIndex, expand_tags, populate_tags, serialize_project
from logging_config import get_logger
from normalize import clean_search, contains_pattern, page_request
from responses import send_response
from schemas import ProjectCollection

logger = get_logger("handlers.collections")

NAME_TAKEN = "Collection with this name already exists"
ADMIN_DEFAULT_LIMIT = 20

ProjectIndex = Dict[ObjectId, Dict[str, Any]]


def project_summary(doc: Dict[str, Any], tags_by_id: TagIndex) -> Dict[str, Any]:
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "imageUrl": doc.get("image_url", ""),
        "tags": expand_tags(doc, tags_by_id),
        "createdAt": doc.get("created_at"),
        "updatedAt": doc.get("updated_at"),
    }


def serialize_collection(
    doc: Dict[str, Any],
    projects_by_id: ProjectIndex,
    tags_by_id: TagIndex,
    summary: bool = False,
) -> Dict[str, Any]:
    render = project_summary if summary else serialize_project
    project_ids = doc.get("projects", [])
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "description": doc.get("description", ""),
        "cover": doc.get("cover", ""),
        "projectsCount": len(project_ids),
        "projects": [
            render(projects_by_id[pid], tags_by_id) for pid in project_ids if pid in projects_by_id
        ],
        "createdAt": doc.get("created_at"),
        "updatedAt": doc.get("updated_at"),
    }


async def populate_projects(db, collections: Iterable[Dict[str, Any]]):
    """Load referenced projects, then the tags of those projects."""
    project_ids = [pid for collection in collections for pid in collection.get("projects", [])]
    projects_by_id = await get_documents_by_ids(db, PROJECTS, project_ids)
    tags_by_id = await populate_tags(db, projects_by_id.values())
    return projects_by_id, tags_by_id


async def _existing_project_ids(db, ids: List[str]) -> List[ObjectId]:
    object_ids = [ObjectId(pid) for pid in ids]
    if not object_ids:
        return []
    found = await get_documents(db, PROJECTS, {"_id": {"$in": object_ids}}, projection={"_id": 1})
    found_ids = {doc["_id"] for doc in found}
    missing = [str(oid) for oid in object_ids if oid not in found_ids]
    if missing:
        raise ValidationError(f"Projects not found: {', '.join(missing)}")
    return object_ids


async def _respond_with_collection(db, status_code: int, message: str, doc: Dict[str, Any]):
    projects_by_id, tags_by_id = await populate_projects(db, [doc])
    return send_response(status_code, message, {
        "collection": serialize_collection(doc, projects_by_id, tags_by_id),
    })


def _search_filter(*terms: Optional[str]) -> Dict[str, Any]:
    term = clean_search(*terms)
    return {"name": contains_pattern(term)} if term else {}


@envelope_errors
async def create_collection(db, payload: Any):
    cmd = parse_command(CreateCollectionCommand, payload)
    name_key = cmd.name.lower()

    if await db[COLLECTIONS].find_one({"name_key": name_key}, {"_id": 1}):
        raise ConflictError(NAME_TAKEN)
    project_ids = await _existing_project_ids(db, cmd.projects or [])

    collection = parse_command(ProjectCollection, {
        "name": cmd.name,
        "name_key": name_key,
        "description": cmd.description or "",
        "cover": cmd.cover or "",
        "projects": project_ids,
    })
    try:
        doc = await create_document(db, COLLECTIONS, collection)
    except DuplicateKeyError as exc:
        raise ConflictError(NAME_TAKEN) from exc
    logger.info("Created collection %s", doc["_id"])
    return await _respond_with_collection(db, 201, "Collection created", doc)


@envelope_errors
async def update_collection(db, collection_id: str, payload: Any):
    cmd = parse_command(UpdateCollectionCommand, payload)
    supplied = cmd.model_fields_set
    if not supplied:
        raise ValidationError("Nothing to update")

    oid = require_object_id(collection_id, "collection")
    if not await db[COLLECTIONS].find_one({"_id": oid}, {"_id": 1}):
        raise NotFoundError("Collection not found")

    changes: Dict[str, Any] = {"updated_at": now()}
    if "name" in supplied:
        name_key = cmd.name.lower()
        if await db[COLLECTIONS].find_one({"name_key": name_key, "_id": {"$ne": oid}}, {"_id": 1}):
            raise ConflictError(NAME_TAKEN)
        changes["name"] = cmd.name
        changes["name_key"] = name_key
    if "description" in supplied:
        changes["description"] = cmd.description
    if "cover" in supplied:
        changes["cover"] = cmd.cover
    if "projects" in supplied:
        changes["projects"] = await _existing_project_ids(db, cmd.projects)

    try:
        doc = await db[COLLECTIONS].find_one_and_update(
            {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError as exc:
        raise ConflictError(NAME_TAKEN) from exc
    if not doc:
        raise NotFoundError("Collection not found")
    return await _respond_with_collection(db, 200, "Collection updated", doc)


@envelope_errors
async def delete_collection(db, collection_id: str):
    oid = require_object_id(collection_id, "collection")
    result = await db[COLLECTIONS].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFoundError("Collection not found")
    logger.info("Deleted collection %s", collection_id)
    return send_response(200, "Collection deleted", {"deletedCollectionId": collection_id})


@envelope_errors
async def get_collection(db, collection_id: str):
    oid = require_object_id(collection_id, "collection")
    doc = await db[COLLECTIONS].find_one({"_id": oid})
    if not doc:
        raise NotFoundError("Collection not found")
    return await _respond_with_collection(db, 200, "OK", doc)


async def _list(db, query: Dict[str, Any], paging, summary: bool):
    total, docs = await asyncio.gather(
        db[COLLECTIONS].count_documents(query),
        get_documents(db, COLLECTIONS, query, sort=NEWEST_FIRST, skip=paging.skip, limit=paging.limit),
    )
    projects_by_id, tags_by_id = await populate_projects(db, docs)
    return send_response(200, "OK", {
        "items": [serialize_collection(doc, projects_by_id, tags_by_id, summary=summary) for doc in docs],
        "pagination": paging.meta(total),
    })


@envelope_errors
async def list_collections(
    db,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    q: Optional[str] = None,
):
    return await _list(db, _search_filter(q, search), page_request(page, limit), summary=False)


@envelope_errors
async def admin_list_collections(
    db,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    q: Optional[str] = None,
):
    paging = page_request(page, limit, default_limit=ADMIN_DEFAULT_LIMIT)
    return await _list(db, _search_filter(q, search), paging, summary=True)
