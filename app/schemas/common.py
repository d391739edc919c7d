"""Shared response envelope."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope wrapping every successful API response."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    data: T | None = None
    status_code: int = Field(default=200, alias="statusCode")


def ok(data: T | None, message: str, status_code: int = 200) -> ApiResponse[T]:
    """Build a success envelope."""
    return ApiResponse[T](success=True, message=message, data=data, status_code=status_code)
