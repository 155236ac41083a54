from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from src.infrastructure.api.dependencies import get_current_user
from src.infrastructure.database.supabase_client import UserInfo

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={401: {"description": "Unauthorized - Invalid or missing authentication token"}},
)


class ValidateTokenResponse(BaseModel):
    """Identity recorded as ``uploaded_by`` on images this user uploads."""
    user_id: str = Field(..., description="Unique identifier of the authenticated user")
    email: str | None = Field(None, description="Email address of the authenticated user")


@router.post(
    "/validate",
    response_model=ValidateTokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Validate Authentication Token",
    description="""
    Verify the bearer token in the Authorization header and return the user it
    belongs to.

    **Authentication required**: Yes (Bearer token)
    """,
)
def validate_token(user: UserInfo = Depends(get_current_user)):
    return ValidateTokenResponse(user_id=user.id, email=user.email)
