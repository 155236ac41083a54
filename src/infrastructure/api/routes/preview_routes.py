from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from src.application.preview_sessions import PreviewSessionStore
from src.infrastructure.api.dependencies import get_preview_sessions

router = APIRouter(prefix="/previews", tags=["Pending Previews"])


@router.get(
    "/{token}",
    summary="Serve Pending Preview",
    description="""
    Return the compressed bytes of a pending preview.

    Preview URLs stay valid until the preview is removed from its batch or the
    batch is cleared after a successful upload.
    """,
    responses={
        200: {"content": {"image/*": {}}, "description": "Preview image content"},
        404: {"description": "Preview URL was revoked or never existed"},
    },
)
async def get_preview(token: str, sessions: PreviewSessionStore = Depends(get_preview_sessions)):
    blob = sessions.url_registry.resolve(token)
    if blob is None:
        raise HTTPException(status_code=404, detail="Preview not found")
    return Response(content=blob.data, media_type=blob.mime_type)
