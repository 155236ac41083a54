from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.application.preview_sessions import PreviewSessionStore
from src.domain.services.compression_service import CompressionOptions, ImageCompressionService
from src.infrastructure.database.repositories.equipment_image_repository import (
    EquipmentImageRepository,
)
from src.infrastructure.database.supabase_client import (
    SupabaseAuthAdapter,
    UserInfo,
    get_supabase_client,
)
from src.infrastructure.storage.supabase_storage import SupabaseStorage

_bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_adapter() -> SupabaseAuthAdapter:
    return SupabaseAuthAdapter()


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(_bearer_scheme)] = None,
    auth: Annotated[SupabaseAuthAdapter, Depends(get_auth_adapter)] = None,
) -> UserInfo:
    if not credentials or not credentials.credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        return auth.validate_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


def get_storage() -> SupabaseStorage:
    return SupabaseStorage(get_supabase_client())


def get_image_repo() -> EquipmentImageRepository:
    return EquipmentImageRepository(get_supabase_client())


def get_compression_service() -> ImageCompressionService:
    return ImageCompressionService(CompressionOptions.from_env())


def get_preview_sessions(request: Request) -> PreviewSessionStore:
    return request.app.state.preview_sessions
