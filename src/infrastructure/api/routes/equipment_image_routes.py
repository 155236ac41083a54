from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, Path, UploadFile, status

from src.application.dtos.common_dto import ErrorResponse, SuccessResponse
from src.application.dtos.equipment_image_dto import (
    EquipmentImageResponse,
    ListEquipmentImagesResponse,
    PendingBatchResponse,
    PendingPreviewResponse,
    UploadFailureResponse,
    UploadImagesResponse,
)
from src.application.preview_sessions import PreviewSessionStore
from src.application.use_cases.manage_equipment_images import (
    DeleteEquipmentImageUseCase,
    SetPrimaryImageUseCase,
)
from src.application.use_cases.stage_images import StageImagesUseCase
from src.application.use_cases.upload_equipment_images import UploadEquipmentImagesUseCase
from src.domain.entities.candidate_image import CandidateImage
from src.domain.errors import MetadataWriteError, PreviewNotFoundError, ValidationError
from src.domain.services.compression_service import ImageCompressionService
from src.domain.services.preview_batch import PreviewBatch
from src.infrastructure.api.dependencies import (
    get_compression_service,
    get_current_user,
    get_image_repo,
    get_preview_sessions,
    get_storage,
)
from src.infrastructure.database.repositories.equipment_image_repository import (
    EquipmentImageRepository,
)
from src.infrastructure.storage.supabase_storage import SupabaseStorage

router = APIRouter(
    prefix="/equipment/{equipment_id}/images",
    tags=["Equipment Images"],
    responses={
        401: {"description": "Unauthorized - Invalid or missing authentication token"},
        422: {"description": "Validation Error - Invalid request format"},
    },
)

# ids become storage path segments
EquipmentId = Annotated[
    str,
    Path(description="Equipment record identifier", pattern=r"^[A-Za-z0-9][A-Za-z0-9_-]*$", max_length=64),
]


def _batch_response(sessions: PreviewSessionStore, batch: PreviewBatch | None) -> PendingBatchResponse:
    previews = batch.snapshot() if batch is not None else []
    return PendingBatchResponse(
        previews=[PendingPreviewResponse.from_preview(p) for p in previews],
        max_images=sessions.max_images,
    )


def _session_batch(
    sessions: PreviewSessionStore, user_id: str, equipment_id: str, preview_id: str
) -> PreviewBatch:
    batch = sessions.find(user_id, equipment_id)
    if batch is None:
        raise HTTPException(status_code=404, detail=f"Preview {preview_id} not found")
    return batch


@router.post(
    "/pending",
    response_model=PendingBatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Stage Images",
    description="""
    Validate, compress and stage a selection of image files for an equipment record.

    **Accepted types**: JPEG, PNG, GIF, WebP, up to 10MB each
    **Batch limit**: 10 pending images by default (`MAX_IMAGES_PER_BATCH`)

    The selection is all-or-nothing: if any file is rejected, none is staged.
    Images are resized to fit 1920x1080 and re-encoded; a file that cannot be
    decoded is staged unchanged. The first image of an empty batch becomes primary.
    """,
    response_description="The full pending batch after staging",
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request - Invalid file type, size or too many images"},
    },
)
async def stage_images(
    equipment_id: EquipmentId,
    files: list[UploadFile] = File(..., description="Image files to stage"),
    user=Depends(get_current_user),
    sessions: PreviewSessionStore = Depends(get_preview_sessions),
    compression: ImageCompressionService = Depends(get_compression_service),
):
    candidates = [
        CandidateImage(
            data=await f.read(),
            file_name=f.filename or "image",
            mime_type=f.content_type or "",
        )
        for f in files
    ]
    with sessions.staging(user.id, equipment_id) as batch:
        uc = StageImagesUseCase(compression=compression, batch=batch)
        try:
            await uc.execute(candidates)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _batch_response(sessions, batch)


@router.get(
    "/pending",
    response_model=PendingBatchResponse,
    summary="List Pending Images",
)
async def list_pending(
    equipment_id: EquipmentId,
    user=Depends(get_current_user),
    sessions: PreviewSessionStore = Depends(get_preview_sessions),
):
    """List staged previews with their primary flag and upload status."""
    return _batch_response(sessions, sessions.find(user.id, equipment_id))


@router.delete(
    "/pending/{preview_id}",
    response_model=PendingBatchResponse,
    summary="Remove Pending Image",
    description="""
    Drop a staged preview and release its preview URL. If it was the primary
    image, the first remaining preview becomes primary.
    """,
    responses={
        404: {"model": ErrorResponse, "description": "Not Found - Preview is not in the batch"},
    },
)
async def remove_pending(
    equipment_id: EquipmentId,
    preview_id: str,
    user=Depends(get_current_user),
    sessions: PreviewSessionStore = Depends(get_preview_sessions),
):
    batch = _session_batch(sessions, user.id, equipment_id, preview_id)
    try:
        batch.remove(preview_id)
    except PreviewNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    response = _batch_response(sessions, batch)
    sessions.prune(user.id, equipment_id)
    return response


@router.put(
    "/pending/{preview_id}/primary",
    response_model=PendingBatchResponse,
    summary="Set Pending Primary Image",
    responses={
        404: {"model": ErrorResponse, "description": "Not Found - Preview is not in the batch"},
    },
)
async def set_pending_primary(
    equipment_id: EquipmentId,
    preview_id: str,
    user=Depends(get_current_user),
    sessions: PreviewSessionStore = Depends(get_preview_sessions),
):
    """Mark one staged preview as primary; all others lose the flag."""
    batch = _session_batch(sessions, user.id, equipment_id, preview_id)
    try:
        batch.set_primary(preview_id)
    except PreviewNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _batch_response(sessions, batch)


@router.delete(
    "/pending",
    response_model=SuccessResponse,
    summary="Discard Pending Images",
)
async def discard_pending(
    equipment_id: EquipmentId,
    user=Depends(get_current_user),
    sessions: PreviewSessionStore = Depends(get_preview_sessions),
):
    """Drop the whole pending batch, e.g. when the equipment form is cancelled."""
    sessions.discard(user.id, equipment_id)
    return SuccessResponse(ok=True, message="Pending images discarded")


@router.post(
    "/upload",
    response_model=UploadImagesResponse,
    summary="Upload Pending Images",
    description="""
    Persist every staged preview: bytes go to object storage, then a metadata row
    referencing the equipment is written.

    Images upload concurrently and fail independently; failures are listed per
    image in the response instead of failing the request. A `MetadataWriteError`
    failure carries `orphaned_path`, the stored blob left without a row.
    When at least one image was uploaded, the uploaded selection leaves the
    pending batch; images staged while the upload ran stay pending.
    """,
    response_description="Created records and per-image failures",
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request - No pending images"},
    },
)
async def upload_pending(
    equipment_id: EquipmentId,
    user=Depends(get_current_user),
    sessions: PreviewSessionStore = Depends(get_preview_sessions),
    storage: SupabaseStorage = Depends(get_storage),
    images: EquipmentImageRepository = Depends(get_image_repo),
):
    batch = sessions.find(user.id, equipment_id)
    if batch is None or len(batch) == 0:
        raise HTTPException(status_code=400, detail="No pending images to upload")
    uc = UploadEquipmentImagesUseCase(storage=storage, image_repo=images, batch=batch)
    report = await uc.execute(equipment_id, uploaded_by=user.id)
    sessions.prune(user.id, equipment_id)
    return UploadImagesResponse(
        uploaded=[EquipmentImageResponse.from_entity(e) for e in report.succeeded],
        failures=[
            UploadFailureResponse(
                preview_id=f.preview_id,
                file_name=f.file_name,
                error_type=type(f.error).__name__,
                detail=f.message,
                orphaned_path=f.orphaned_path,
            )
            for f in report.failures
        ],
        batch_cleared=report.batch_cleared,
    )


@router.get(
    "",
    response_model=ListEquipmentImagesResponse,
    summary="List Equipment Images",
)
async def list_images(
    equipment_id: EquipmentId,
    user=Depends(get_current_user),
    images: EquipmentImageRepository = Depends(get_image_repo),
):
    """Uploaded images of an equipment record, primary first, then newest first."""
    items = images.list_by_equipment(equipment_id)
    return ListEquipmentImagesResponse(images=[EquipmentImageResponse.from_entity(i) for i in items])


@router.put(
    "/{image_id}/primary",
    response_model=EquipmentImageResponse,
    summary="Set Primary Image",
    responses={
        404: {"model": ErrorResponse, "description": "Not Found - Image does not belong to this equipment"},
        502: {"model": ErrorResponse, "description": "Bad Gateway - Database rejected the write"},
    },
)
async def set_primary_image(
    equipment_id: EquipmentId,
    image_id: str,
    user=Depends(get_current_user),
    images: EquipmentImageRepository = Depends(get_image_repo),
):
    """Make an uploaded image the equipment's only primary image."""
    try:
        entity = SetPrimaryImageUseCase(image_repo=images).execute(equipment_id, image_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except MetadataWriteError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return EquipmentImageResponse.from_entity(entity)


@router.delete(
    "/{image_id}",
    response_model=SuccessResponse,
    summary="Delete Equipment Image",
    description="""
    Delete an uploaded image: the stored file first, then its metadata row.
    A storage failure is logged and does not block removing the row.
    """,
    responses={
        404: {"model": ErrorResponse, "description": "Not Found - Image does not belong to this equipment"},
        502: {"model": ErrorResponse, "description": "Bad Gateway - Database rejected the write"},
    },
)
async def delete_image(
    equipment_id: EquipmentId,
    image_id: str,
    user=Depends(get_current_user),
    storage: SupabaseStorage = Depends(get_storage),
    images: EquipmentImageRepository = Depends(get_image_repo),
):
    uc = DeleteEquipmentImageUseCase(storage=storage, image_repo=images)
    try:
        ok = uc.execute(equipment_id, image_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except MetadataWriteError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return SuccessResponse(ok=ok, message="Image deleted" if ok else None)
