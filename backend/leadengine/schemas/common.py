"""Common response schemas."""

from typing import Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    version: str = "1.0.0"
    db: str
    redis: str
    webhook: str


class ErrorResponse(BaseModel):
    detail: str
    code: str
    errors: Optional[list[str]] = None

