from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from auth import Identity, get_current_user, require_admin
from config import get_settings
from database import close_client, get_db
from errors import ApiError
from handlers import collections, contacts, projects, tags, users
from logging_config import setup_logging
from responses import send_error

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await get_db()
    except PyMongoError:
        logger.exception("Could not prepare database indexes; retrying on first request")
    yield
    await close_client()


app = FastAPI(title="Student Portfolio API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return send_error(exc.status_code, exc.message)


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return send_error(500, "Server error")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return send_error(400, "Invalid request body")


# Health

@app.get("/api/health")
async def health():
    return {"message": "API Work"}


@app.get("/api/health/database")
async def database_health(db=Depends(get_db)):
    status = {
        "message": "API Work",
        "database": "Not Available",
        "database_name": get_settings().database_name,
        "collections": [],
    }
    try:
        status["collections"] = (await db.list_collection_names())[:10]
        status["database"] = "Connected"
    except Exception as e:
        status["database"] = f"Error: {str(e)[:80]}"
    return status


# Auth

@app.post("/api/auth/register")
async def register(payload: Any = Body(None), db=Depends(get_db)):
    return await users.register(db, payload)


@app.post("/api/auth/login")
async def login(payload: Any = Body(None), db=Depends(get_db)):
    return await users.login(db, payload)


@app.get("/api/profile")
async def profile(identity: Identity = Depends(get_current_user)):
    return await users.profile(identity)


# Admin: users

@app.get("/api/admin/users", dependencies=[Depends(require_admin)])
async def admin_list_users(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    db=Depends(get_db),
):
    return await users.list_users(db, page, limit, search)


@app.post("/api/admin/users", dependencies=[Depends(require_admin)])
async def admin_create_user(payload: Any = Body(None), db=Depends(get_db)):
    return await users.create_user(db, payload)


@app.get("/api/admin/users/{user_id}", dependencies=[Depends(require_admin)])
async def admin_get_user(user_id: str, db=Depends(get_db)):
    return await users.get_user(db, user_id)


@app.patch("/api/admin/users/{user_id}", dependencies=[Depends(require_admin)])
async def admin_update_user(user_id: str, payload: Any = Body(None), db=Depends(get_db)):
    return await users.update_user(db, user_id, payload)


@app.delete("/api/admin/users/{user_id}", dependencies=[Depends(require_admin)])
async def admin_delete_user(user_id: str, db=Depends(get_db)):
    return await users.delete_user(db, user_id)


# Projects

@app.get("/api/projects")
async def list_projects(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    q: Optional[str] = None,
    tag: Optional[str] = None,
    db=Depends(get_db),
):
    return await projects.list_projects(db, page, limit, search, tag, q)


@app.get("/api/projects/{project_id}")
async def get_project(project_id: str, db=Depends(get_db)):
    return await projects.get_project(db, project_id)


@app.post("/api/admin/projects", dependencies=[Depends(require_admin)])
async def admin_create_project(payload: Any = Body(None), db=Depends(get_db)):
    return await projects.create_project(db, payload)


@app.patch("/api/admin/projects/{project_id}", dependencies=[Depends(require_admin)])
async def admin_update_project(project_id: str, payload: Any = Body(None), db=Depends(get_db)):
    return await projects.update_project(db, project_id, payload)


@app.delete("/api/admin/projects/{project_id}", dependencies=[Depends(require_admin)])
async def admin_delete_project(project_id: str, db=Depends(get_db)):
    return await projects.delete_project(db, project_id)


# Tags

@app.get("/api/tags")
async def list_tags(db=Depends(get_db)):
    return await tags.list_tags(db)


@app.post("/api/admin/tags", dependencies=[Depends(require_admin)])
async def admin_create_tag(payload: Any = Body(None), db=Depends(get_db)):
    return await tags.create_tag(db, payload)


@app.get("/api/admin/tags/{tag_id}", dependencies=[Depends(require_admin)])
async def admin_get_tag(tag_id: str, db=Depends(get_db)):
    return await tags.get_tag(db, tag_id)


@app.patch("/api/admin/tags/{tag_id}", dependencies=[Depends(require_admin)])
async def admin_update_tag(tag_id: str, payload: Any = Body(None), db=Depends(get_db)):
    return await tags.update_tag(db, tag_id, payload)


@app.delete("/api/admin/tags/{tag_id}", dependencies=[Depends(require_admin)])
async def admin_delete_tag(tag_id: str, db=Depends(get_db)):
    return await tags.delete_tag(db, tag_id)


# Collections

@app.get("/api/collections")
async def list_collections(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    q: Optional[str] = None,
    db=Depends(get_db),
):
    return await collections.list_collections(db, page, limit, search, q)


@app.get("/api/collections/{collection_id}")
async def get_collection(collection_id: str, db=Depends(get_db)):
    return await collections.get_collection(db, collection_id)


@app.get("/api/admin/collections", dependencies=[Depends(require_admin)])
async def admin_list_collections(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    q: Optional[str] = None,
    db=Depends(get_db),
):
    return await collections.admin_list_collections(db, page, limit, search, q)


@app.post("/api/admin/collections", dependencies=[Depends(require_admin)])
async def admin_create_collection(payload: Any = Body(None), db=Depends(get_db)):
    return await collections.create_collection(db, payload)


@app.patch("/api/admin/collections/{collection_id}", dependencies=[Depends(require_admin)])
async def admin_update_collection(collection_id: str, payload: Any = Body(None), db=Depends(get_db)):
    return await collections.update_collection(db, collection_id, payload)


@app.delete("/api/admin/collections/{collection_id}", dependencies=[Depends(require_admin)])
async def admin_delete_collection(collection_id: str, db=Depends(get_db)):
    return await collections.delete_collection(db, collection_id)


# Contacts

@app.post("/api/contacts")
async def create_contact(request: Request, payload: Any = Body(None), db=Depends(get_db)):
    peer = request.client.host if request.client else None
    meta = contacts.request_meta(request.headers, peer)
    return await contacts.create_contact(db, payload, meta)


@app.get("/api/admin/contacts", dependencies=[Depends(require_admin)])
async def admin_list_contacts(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    is_read: Optional[str] = Query(None, alias="isRead"),
    db=Depends(get_db),
):
    return await contacts.list_contacts(db, page, limit, search, is_read)


@app.get("/api/admin/contacts/{contact_id}", dependencies=[Depends(require_admin)])
async def admin_get_contact(contact_id: str, db=Depends(get_db)):
    return await contacts.get_contact(db, contact_id)


@app.patch("/api/admin/contacts/{contact_id}", dependencies=[Depends(require_admin)])
async def admin_update_contact(contact_id: str, payload: Any = Body(None), db=Depends(get_db)):
    return await contacts.update_contact(db, contact_id, payload)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
