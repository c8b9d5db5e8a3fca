"""
MongoDB access for the Portfolio API

One async client per process. Handlers receive the database handle through
the ``get_db`` dependency and address collections by the lowercase name of
the matching schema class (User -> "user").
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, AsyncMongoClient

from config import get_settings
from errors import ValidationError
from logging_config import get_logger

logger = get_logger("database")

USERS = "user"
TAGS = "tag"
PROJECTS = "project"
COLLECTIONS = "projectcollection"
CONTACTS = "contact"

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]

_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

_client: Optional[AsyncMongoClient] = None
_indexes_ready = False


def get_client() -> AsyncMongoClient:
    global _client
    if _client is None:
        settings = get_settings()
        _client = AsyncMongoClient(settings.database_url, tz_aware=True)
    return _client


async def get_db():
    """FastAPI dependency returning the application database.

    Unique indexes back every uniqueness check, so the database is not handed
    out until ensure_indexes has succeeded once in this process.
    """
    global _indexes_ready
    db = get_client()[get_settings().database_name]
    if not _indexes_ready:
        await ensure_indexes(db)
        _indexes_ready = True
    return db


async def close_client() -> None:
    global _client, _indexes_ready
    if _client is not None:
        await _client.close()
        _client = None
        _indexes_ready = False


async def ensure_indexes(db) -> None:
    """Create the uniqueness and lookup indexes the handlers rely on."""
    await db[USERS].create_index([("email", ASCENDING)], unique=True)
    await db[USERS].create_index([("created_at", DESCENDING)])
    await db[TAGS].create_index([("name", ASCENDING)], unique=True)
    await db[PROJECTS].create_index([("tags", ASCENDING)])
    await db[PROJECTS].create_index([("created_at", DESCENDING)])
    await db[COLLECTIONS].create_index([("name_key", ASCENDING)], unique=True)
    await db[CONTACTS].create_index([("email", ASCENDING)], unique=True)
    await db[CONTACTS].create_index([("is_read", ASCENDING), ("created_at", DESCENDING)])
    logger.info("Database indexes ensured")


def now() -> datetime:
    return datetime.now(timezone.utc)


def is_object_id(value: Any) -> bool:
    if isinstance(value, ObjectId):
        return True
    return isinstance(value, str) and bool(_OBJECT_ID_RE.match(value))


def parse_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    return ObjectId(value) if is_object_id(value) else None


async def create_document(db, collection_name: str, data: Union[BaseModel, dict]) -> Dict[str, Any]:
    """Insert a document with timestamps and return it as stored."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    stamp = now()
    data_dict["created_at"] = stamp
    data_dict["updated_at"] = stamp
    result = await db[collection_name].insert_one(data_dict)
    data_dict["_id"] = result.inserted_id
    return data_dict


async def get_documents(
    db,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[tuple]] = None,
    skip: int = 0,
    limit: int = 0,
    projection: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(
        filter_dict or {},
        projection,
        sort=sort,
        skip=skip,
        limit=limit,
    )
    return await cursor.to_list(length=None)


async def get_documents_by_ids(db, collection_name: str, ids: Iterable[ObjectId]) -> Dict[ObjectId, Dict[str, Any]]:
    """Batch-fetch documents by id, keyed by id. Unknown ids are absent."""
    id_list = list(dict.fromkeys(ids))
    if not id_list:
        return {}
    docs = await get_documents(db, collection_name, {"_id": {"$in": id_list}})
    return {doc["_id"]: doc for doc in docs}


def require_object_id(value: Any, entity: str) -> ObjectId:
    """Parse a path identifier or fail with ``Invalid <entity> id``."""
    oid = parse_object_id(value)
    if oid is None:
        raise ValidationError(f"Invalid {entity} id")
    return oid
