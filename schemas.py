"""
Database Schemas for the Portfolio API

Each Pydantic model represents a collection in MongoDB. The collection name
is the lowercase of the class name (e.g., ProjectCollection -> "projectcollection").
Timestamps (created_at / updated_at) are stamped by database.create_document.
"""
from typing import List, Literal, Optional

from bson.objectid import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from normalize import HEX_COLOR_RE

Role = Literal["user", "admin"]
ROLES = ("user", "admin")


class User(BaseModel):
    """
    Users collection schema
    Passwords are stored as bcrypt hashes and never leave the API.
    """
    name: str = Field(..., min_length=2, max_length=80, description="Display name")
    email: EmailStr = Field(..., max_length=200, description="Lowercased email address (unique)")
    password_hash: str = Field(..., description="BCrypt hash of the user's password")
    role: Role = Field("user", description="Access level")


class Tag(BaseModel):
    name: str = Field(..., min_length=1, max_length=64, description="Lowercased tag name (unique)")
    color: str = Field(..., description="Hex color, always with a leading '#'")

    @field_validator("color")
    @classmethod
    def _hex_color(cls, value: str) -> str:
        if not value.startswith("#") or not HEX_COLOR_RE.match(value):
            raise ValueError("color must be a valid hex like #AABBCC or #ABC")
        return value


class Project(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=2, max_length=120)
    description: Optional[str] = Field(None, max_length=4000)
    image_url: str = Field("", max_length=2048, description="Empty or an http(s) URL")
    stack: List[str] = Field(default_factory=list, description="Technologies used")
    tags: List[ObjectId] = Field(default_factory=list, description="References into the tag collection")


class ProjectCollection(BaseModel):
    """
    Curated groups of projects
    name_key is the lowercased name and carries the unique index.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=2, max_length=120)
    name_key: str = Field(..., description="Case-insensitive uniqueness key")
    description: str = ""
    cover: str = Field("", description="Opaque cover reference, e.g. an image URL")
    projects: List[ObjectId] = Field(default_factory=list, description="References into the project collection")


class ContactMeta(BaseModel):
    ip: str = ""
    user_agent: str = ""


class Contact(BaseModel):
    """
    Inbound contact requests
    One request per email address; only is_read changes after creation.
    """
    name: str = Field(..., min_length=2, max_length=120)
    email: str = Field(..., max_length=200, description="Lowercased email address (unique)")
    message: Optional[str] = Field(None, max_length=4000)
    is_read: bool = False
    meta: ContactMeta = Field(default_factory=ContactMeta)
