"""
Request commands

Request bodies arrive as plain dicts. Each operation validates its body into
one of the models below before any handler logic runs; ``parse_command``
turns pydantic's error list into a single readable ValidationError message.

Update commands have only optional fields. ``model_fields_set`` tells the
handler which fields the caller actually supplied.
"""
from typing import Annotated, Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from database import is_object_id
from errors import ValidationError
from normalize import (
    CONTACT_EMAIL_RE,
    normalize_email,
    normalize_hex_color,
    normalize_image_url,
    normalize_string_list,
    normalize_tag_name,
)
from schemas import ROLES

C = TypeVar("C", bound=BaseModel)

MIN_PASSWORD_LENGTH = 6
MAX_TEXT_LENGTH = 4000
MAX_EMAIL_LENGTH = 200
COLOR_MESSAGE = "color must be a valid hex like #AABBCC or #ABC"
IMAGE_URL_MESSAGE = "imageUrl must be a valid http/https url"


def field_error(message: str) -> PydanticCustomError:
    return PydanticCustomError("field_error", message)


def _required(value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise PydanticCustomError("required", "value is required")
    return value


RequiredStr = Annotated[str, BeforeValidator(_required)]


def describe_errors(exc: PydanticValidationError) -> str:
    required: List[str] = []
    messages: Dict[str, None] = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "body"
        if err["type"] in ("missing", "required"):
            required.append(field)
        elif err["type"] == "field_error":
            messages.setdefault(err["msg"], None)
        else:
            messages.setdefault(f"{field} is invalid", None)
    if required:
        verb = "is" if len(required) == 1 else "are"
        return f"{', '.join(required)} {verb} required"
    return "; ".join(messages)


def parse_command(model_cls: Type[C], payload: Any) -> C:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid request body")
    try:
        return model_cls.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(describe_errors(exc)) from exc


def _name(value: Optional[str], min_length: int = 2, max_length: int = 120) -> str:
    if value is None or len(value.strip()) < min_length:
        raise field_error("name is too short")
    value = value.strip()
    if len(value) > max_length:
        raise field_error("name is too long")
    return value


def _text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if len(text) > MAX_TEXT_LENGTH:
        raise field_error(f"{field} is too long")
    return text


_EMAIL_ADAPTER = TypeAdapter(EmailStr)


def _user_email(value: Optional[str]) -> str:
    # Same email-validator check as the stored User document.
    email = normalize_email(value or "")
    if len(email) > MAX_EMAIL_LENGTH:
        raise field_error("email is invalid")
    try:
        _EMAIL_ADAPTER.validate_python(email)
    except PydanticValidationError:
        raise field_error("email is invalid") from None
    return email


def _password(value: Optional[str]) -> str:
    if value is None or len(value) < MIN_PASSWORD_LENGTH:
        raise field_error(f"password must be at least {MIN_PASSWORD_LENGTH} chars")
    return value


def _role(value: Optional[str]) -> str:
    if value not in ROLES:
        raise field_error("Invalid role")
    return value


def _string_array(value: Any, field: str) -> List[str]:
    if not isinstance(value, list):
        raise field_error(f"{field} must be an array of strings")
    return normalize_string_list(value)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class RegisterCommand(BaseModel):
    name: RequiredStr
    email: RequiredStr
    password: RequiredStr

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return _name(value, max_length=80)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _user_email(value)

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        return _password(value)


class CreateUserCommand(RegisterCommand):
    role: Optional[str] = None

    @field_validator("role")
    @classmethod
    def _check_role(cls, value: Optional[str]) -> str:
        return "user" if value is None else _role(value)


class LoginCommand(BaseModel):
    email: RequiredStr
    password: RequiredStr

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)


class UpdateUserCommand(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: Optional[str]) -> str:
        return _name(value, max_length=80)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: Optional[str]) -> str:
        return _user_email(value)

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: Optional[str]) -> str:
        return _password(value)

    @field_validator("role")
    @classmethod
    def _check_role(cls, value: Optional[str]) -> str:
        return _role(value)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class TagFields(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: Optional[str]) -> str:
        name = normalize_tag_name(value or "")
        if not name:
            raise field_error("name is invalid")
        if len(name) > 64:
            raise field_error("name is too long")
        return name

    @field_validator("color")
    @classmethod
    def _check_color(cls, value: Optional[str]) -> str:
        color = normalize_hex_color(value or "")
        if color is None:
            raise field_error(COLOR_MESSAGE)
        return color


class CreateTagCommand(TagFields):
    name: RequiredStr
    color: RequiredStr


class UpdateTagCommand(TagFields):
    pass


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

class ProjectFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    description: Optional[str] = None
    stack: Optional[Any] = None
    tags: Optional[Any] = None
    image_url: Optional[Any] = Field(None, alias="imageUrl")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: Optional[str]) -> str:
        return _name(value)

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: Optional[str]) -> str:
        return _text(value, "description")

    @field_validator("stack")
    @classmethod
    def _check_stack(cls, value: Any) -> List[str]:
        return _string_array(value, "stack")

    @field_validator("tags")
    @classmethod
    def _check_tags(cls, value: Any) -> List[str]:
        names = [normalize_tag_name(name) for name in _string_array(value, "tags")]
        return list(dict.fromkeys(names))

    @field_validator("image_url")
    @classmethod
    def _check_image_url(cls, value: Any) -> str:
        # An explicit empty value clears the field.
        if value is None or (isinstance(value, str) and not value.strip()):
            return ""
        url = normalize_image_url(value)
        if not url:
            raise field_error(IMAGE_URL_MESSAGE)
        return url


class CreateProjectCommand(ProjectFields):
    name: RequiredStr


class UpdateProjectCommand(ProjectFields):
    pass


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

class CollectionFields(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    cover: Optional[str] = None
    projects: Optional[Any] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: Optional[str]) -> str:
        return _name(value)

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: Optional[str]) -> str:
        return _text(value, "description")

    @field_validator("cover")
    @classmethod
    def _check_cover(cls, value: Optional[str]) -> str:
        return (value or "").strip()

    @field_validator("projects")
    @classmethod
    def _check_projects(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            raise field_error("projects must be an array")
        ids = [str(item).strip() for item in value if item is not None]
        ids = list(dict.fromkeys(pid for pid in ids if pid))
        invalid = [pid for pid in ids if not is_object_id(pid)]
        if invalid:
            raise field_error(f"Invalid project ids: {', '.join(invalid)}")
        return ids


class CreateCollectionCommand(CollectionFields):
    name: RequiredStr


class UpdateCollectionCommand(CollectionFields):
    pass


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

class CreateContactCommand(BaseModel):
    name: RequiredStr
    email: RequiredStr
    message: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return _name(value)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        email = normalize_email(value)
        if len(email) > MAX_EMAIL_LENGTH or not CONTACT_EMAIL_RE.match(email):
            raise field_error("email is invalid")
        return email

    @field_validator("message")
    @classmethod
    def _check_message(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _text(value, "message")


class UpdateContactCommand(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_read: Optional[Any] = Field(None, alias="isRead")

    @field_validator("is_read")
    @classmethod
    def _check_is_read(cls, value: Any) -> bool:
        if not isinstance(value, bool):
            raise field_error("isRead must be a boolean")
        return value
