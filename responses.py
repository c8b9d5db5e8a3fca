"""
Response envelope

Every API response body has the same three fields:

    {"message": str, "success": bool, "data": ...}

Errors always carry ``data = {}``. The HTTP status is passed explicitly and
never derived from the envelope.
"""
from typing import Any, Dict, Generic, TypeVar

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    message: str
    success: bool
    data: T


def envelope(message: str, success: bool, data: Any) -> Dict[str, Any]:
    return Envelope[Any](message=message, success=success, data=data).model_dump()


def send_response(status_code: int, message: str, data: Any = None, success: bool = True) -> JSONResponse:
    body = envelope(message, success, {} if data is None else data)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def send_error(status_code: int, message: str) -> JSONResponse:
    return send_response(status_code, message, {}, success=False)
