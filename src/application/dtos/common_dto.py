"""Common DTOs for API responses and error handling."""
from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response model."""
    detail: str = Field(..., description="Error message describing what went wrong")


class SuccessResponse(BaseModel):
    """Standard success response model."""
    ok: bool = Field(True, description="Indicates the operation was successful")
    message: str | None = Field(None, description="Optional success message")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Health status", examples=["healthy"])


class RootResponse(BaseModel):
    status: str = Field(..., description="API status", examples=["ok"])
    service: str = Field(..., description="Service name", examples=["equipment-images"])
    version: str = Field(..., description="API version", examples=["0.1.0"])
