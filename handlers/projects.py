"""
Project handlers

Projects reference tags by id, but callers write them by name. Names are
resolved against existing tags on every write and are never auto-created.
Reads expand the references back into {id, name, color}; ids whose tag has
been deleted are skipped.
"""
import asyncio
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson.objectid import ObjectId
from pymongo import ReturnDocument

from commands import CreateProjectCommand, UpdateProjectCommand, parse_command
from database import (
    NEWEST_FIRST,
    PROJECTS,
    TAGS,
    create_document,
    get_documents,
    get_documents_by_ids,
    now,
    parse_object_id,
    require_object_id,
)
from errors import NotFoundError, ValidationError, envelope_errors
from handlers.tags import tag_ref
from logging_config import get_logger
from normalize import clean_search, contains_pattern, normalize_tag_name, page_request
from responses import send_response
from schemas import Project

logger = get_logger("handlers.projects")

TagIndex = Dict[ObjectId, Dict[str, Any]]


async def resolve_tag_ids(db, names: List[str]) -> Tuple[List[ObjectId], List[str]]:
    """Map normalized tag names to ids. Returns (ids, missing names)."""
    if not names:
        return [], []
    found = await get_documents(db, TAGS, {"name": {"$in": names}}, projection={"_id": 1, "name": 1})
    by_name = {doc["name"]: doc["_id"] for doc in found}
    missing = [name for name in names if name not in by_name]
    ids = [by_name[name] for name in names if name in by_name]
    return ids, missing


async def populate_tags(db, projects: Iterable[Dict[str, Any]]) -> TagIndex:
    """Batch-load every tag referenced by the given projects."""
    tag_ids = [tag_id for project in projects for tag_id in project.get("tags", [])]
    return await get_documents_by_ids(db, TAGS, tag_ids)


def expand_tags(doc: Dict[str, Any], tags_by_id: TagIndex) -> List[Dict[str, Any]]:
    return [tag_ref(tags_by_id[tag_id]) for tag_id in doc.get("tags", []) if tag_id in tags_by_id]


def serialize_project(doc: Dict[str, Any], tags_by_id: TagIndex) -> Dict[str, Any]:
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "description": doc.get("description"),
        "stack": doc.get("stack", []),
        "tags": expand_tags(doc, tags_by_id),
        "imageUrl": doc.get("image_url", ""),
        "createdAt": doc.get("created_at"),
        "updatedAt": doc.get("updated_at"),
    }


async def _tag_ids_or_fail(db, names: List[str]) -> List[ObjectId]:
    ids, missing = await resolve_tag_ids(db, names)
    if missing:
        raise ValidationError(f"Tags not found: {', '.join(missing)}")
    return ids


async def _respond_with_project(db, status_code: int, message: str, doc: Dict[str, Any]):
    tags_by_id = await populate_tags(db, [doc])
    return send_response(status_code, message, {"project": serialize_project(doc, tags_by_id)})


@envelope_errors
async def create_project(db, payload: Any):
    cmd = parse_command(CreateProjectCommand, payload)
    tag_ids = await _tag_ids_or_fail(db, cmd.tags or [])

    project = parse_command(Project, {
        "name": cmd.name,
        "description": cmd.description,
        "stack": cmd.stack or [],
        "tags": tag_ids,
        "image_url": cmd.image_url or "",
    })
    doc = await create_document(db, PROJECTS, project)
    logger.info("Created project %s", doc["_id"])
    return await _respond_with_project(db, 201, "Project created", doc)


@envelope_errors
async def update_project(db, project_id: str, payload: Any):
    cmd = parse_command(UpdateProjectCommand, payload)
    supplied = cmd.model_fields_set
    if not supplied:
        raise ValidationError("Nothing to update")

    oid = require_object_id(project_id, "project")
    if not await db[PROJECTS].find_one({"_id": oid}, {"_id": 1}):
        raise NotFoundError("Project not found")

    changes: Dict[str, Any] = {"updated_at": now()}
    for field in ("name", "description", "stack", "image_url"):
        if field in supplied:
            changes[field] = getattr(cmd, field)
    if "tags" in supplied:
        changes["tags"] = await _tag_ids_or_fail(db, cmd.tags)

    doc = await db[PROJECTS].find_one_and_update(
        {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    if not doc:
        raise NotFoundError("Project not found")
    return await _respond_with_project(db, 200, "Project updated", doc)


@envelope_errors
async def delete_project(db, project_id: str):
    # Collections that reference the project keep the dangling id.
    oid = require_object_id(project_id, "project")
    result = await db[PROJECTS].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFoundError("Project not found")
    logger.info("Deleted project %s", project_id)
    return send_response(200, "Project deleted", {"deletedProjectId": project_id})


@envelope_errors
async def get_project(db, project_id: str):
    oid = require_object_id(project_id, "project")
    doc = await db[PROJECTS].find_one({"_id": oid})
    if not doc:
        raise NotFoundError("Project not found")
    return await _respond_with_project(db, 200, "OK", doc)


@envelope_errors
async def list_projects(
    db,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    tag: Optional[str] = None,
    q: Optional[str] = None,
):
    paging = page_request(page, limit)
    term = clean_search(search, q)
    tag_term = clean_search(tag)

    query: Dict[str, Any] = {}
    if tag_term:
        tag_id = parse_object_id(tag_term)
        if tag_id is None:
            found = await db[TAGS].find_one({"name": normalize_tag_name(tag_term)}, {"_id": 1})
            if not found:
                return send_response(200, "OK", {"items": [], "pagination": paging.meta(0)})
            tag_id = found["_id"]
        query["tags"] = tag_id

    if term:
        pattern = contains_pattern(term)
        matched_tags = await get_documents(db, TAGS, {"name": pattern}, projection={"_id": 1})
        clauses: List[Dict[str, Any]] = [
            {"name": pattern},
            {"description": pattern},
            {"stack": pattern},
        ]
        if matched_tags:
            clauses.append({"tags": {"$in": [doc["_id"] for doc in matched_tags]}})
        query["$or"] = clauses

    total, docs = await asyncio.gather(
        db[PROJECTS].count_documents(query),
        get_documents(db, PROJECTS, query, sort=NEWEST_FIRST, skip=paging.skip, limit=paging.limit),
    )
    tags_by_id = await populate_tags(db, docs)
    return send_response(200, "OK", {
        "items": [serialize_project(doc, tags_by_id) for doc in docs],
        "pagination": paging.meta(total),
    })
