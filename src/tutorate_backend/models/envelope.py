'''
The standard response envelope shared by every endpoint:
{ success, data?, error?, code? }
'''
import math
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

DataT = TypeVar("DataT")


class Envelope(BaseModel, Generic[DataT]):
    success: bool = True
    data: Optional[DataT] = None
    message: Optional[str] = None
    count: Optional[int] = None
    error: Optional[str] = None
    code: Optional[str] = None


class Page(BaseModel, Generic[DataT]):
    items: list[DataT]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, items: list[Any], total: int, page: int, limit: int) -> "Page":
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


def ok(data: Any = None, message: Optional[str] = None, count: Optional[int] = None) -> dict:
    """Success body. Returned as a dict so FastAPI validates it against the route's Envelope[...]."""
    body: dict[str, Any] = {"success": True, "data": data}
    if message is not None:
        body["message"] = message
    if count is not None:
        body["count"] = count
    return body


def error_body(message: str, code: str) -> dict:
    return {"success": False, "error": message, "code": code}


def to_pydantic_list(orm_list: list, model) -> list:
    """Helper function to convert ORM objects to Pydantic models."""
    return [model.model_validate(item) for item in orm_list]
