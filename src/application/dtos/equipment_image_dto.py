from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from src.domain.entities.equipment_image import EquipmentImageEntity
from src.domain.entities.pending_preview import PendingPreview
from src.domain.services.compression_service import ImageCompressionService


class PendingPreviewResponse(BaseModel):
    """A compressed image waiting in the authoring batch."""
    id: str = Field(..., description="Client-side preview identifier", examples=["preview-3f2a9c1b7d4e"])
    preview_url: str = Field(..., description="URL serving the compressed bytes until upload or removal")
    file_name: str = Field(..., description="Original file name", examples=["laptop-front.jpg"])
    mime_type: str = Field(..., description="MIME type of the staged bytes", examples=["image/jpeg"])
    is_primary: bool = Field(..., description="Whether this image becomes the equipment's primary image")
    is_uploading: bool = Field(False, description="True while the upload is in flight")
    upload_progress: int | None = Field(None, description="Upload progress 0-100", ge=0, le=100)
    original_size: int = Field(..., description="Size of the selected file in bytes", ge=0)
    compressed_size: int = Field(..., description="Size of the staged bytes", ge=0)
    compression_ratio: float = Field(..., description="(original - compressed) / original; may be <= 0")
    size_label: str = Field(..., description="Human readable staged size", examples=["1.23 MB"])
    width: int = Field(..., description="Pixel width after resizing, 0 if not decoded", ge=0)
    height: int = Field(..., description="Pixel height after resizing, 0 if not decoded", ge=0)
    compressed: bool = Field(..., description="False when the original file is staged after a decode failure")

    @classmethod
    def from_preview(cls, preview: PendingPreview) -> PendingPreviewResponse:
        result = preview.result
        return cls(
            id=preview.id,
            preview_url=preview.preview_url,
            file_name=result.file_name,
            mime_type=result.mime_type,
            is_primary=preview.is_primary,
            is_uploading=preview.is_uploading,
            upload_progress=preview.upload_progress,
            original_size=result.original_size,
            compressed_size=result.compressed_size,
            compression_ratio=result.compression_ratio,
            size_label=ImageCompressionService.format_file_size(result.compressed_size),
            width=result.width,
            height=result.height,
            compressed=not result.fallback,
        )


class PendingBatchResponse(BaseModel):
    previews: list[PendingPreviewResponse] = Field(..., description="Pending previews in display order")
    max_images: int = Field(..., description="Maximum number of images per batch", examples=[10])


class EquipmentImageResponse(BaseModel):
    """A persisted image record of an equipment item."""
    id: str = Field(..., description="Image record identifier", examples=["img_12"])
    equipment_id: str = Field(..., description="Owning equipment identifier")
    url: str = Field(..., description="Public URL of the stored image")
    file_name: str | None = Field(None, description="Original file name", examples=["laptop-front.jpg"])
    file_size: int | None = Field(None, description="Stored size in bytes", ge=0)
    mime_type: str | None = Field(None, description="MIME type", examples=["image/jpeg"])
    is_primary: bool = Field(..., description="Whether this is the equipment's primary image")
    uploaded_by: str | None = Field(None, description="ID of the uploading user")
    created_at: datetime = Field(..., description="When the record was created")

    @classmethod
    def from_entity(cls, entity: EquipmentImageEntity) -> EquipmentImageResponse:
        return cls(
            id=entity.id,
            equipment_id=entity.equipment_id,
            url=entity.image_url,
            file_name=entity.image_name,
            file_size=entity.file_size,
            mime_type=entity.mime_type,
            is_primary=entity.is_primary,
            uploaded_by=entity.uploaded_by,
            created_at=entity.created_at,
        )


class ListEquipmentImagesResponse(BaseModel):
    images: list[EquipmentImageResponse] = Field(..., description="Primary image first, then newest first")


class UploadFailureResponse(BaseModel):
    preview_id: str = Field(..., description="Preview that failed to upload")
    file_name: str = Field(..., description="File name of the failed preview")
    error_type: str = Field(..., description="StorageWriteError or MetadataWriteError")
    detail: str = Field(..., description="Error message")
    orphaned_path: str | None = Field(
        None, description="Storage path of a blob stored without a metadata row"
    )


class UploadImagesResponse(BaseModel):
    uploaded: list[EquipmentImageResponse] = Field(..., description="Records created by this upload")
    failures: list[UploadFailureResponse] = Field(..., description="Per-image failures")
    batch_cleared: bool = Field(..., description="True when the pending batch was cleared")
