"""Response models for the store proxy API."""

from typing import Any

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    storage: str


class ErrorResponse(BaseModel):
    detail: str
    error_code: str | None = None


class RowResponse(BaseModel):
    collection: str
    key: str
    row: dict[str, Any]


class RowListResponse(BaseModel):
    collection: str
    rows: list[dict[str, Any]]


class UpdateResponse(BaseModel):
    collection: str
    key: str
    updated: bool
    row: dict[str, Any] | None = None
