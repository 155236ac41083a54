from __future__ import annotations

import asyncio
import logging
import warnings
from dataclasses import dataclass, field

from src.domain.entities.equipment_image import EquipmentImageEntity
from src.domain.entities.pending_preview import PendingPreview
from src.domain.errors import MetadataWriteError, OrphanedBlobWarning, StorageWriteError
from src.domain.services.preview_batch import PreviewBatch
from src.infrastructure.database.repositories.equipment_image_repository import (
    EquipmentImageRepository,
)
from src.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadFailure:
    preview_id: str
    file_name: str
    error: StorageWriteError | MetadataWriteError
    orphaned_path: str | None = None  # set when the blob was stored but its row was not

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class UploadBatchReport:
    succeeded: list[EquipmentImageEntity] = field(default_factory=list)
    failures: list[UploadFailure] = field(default_factory=list)
    batch_cleared: bool = False


@dataclass
class UploadEquipmentImagesUseCase:
    """
    Persist every pending preview of a batch for one equipment record.

    Items upload concurrently and independently: a failing item never cancels or
    rolls back its siblings. The batch is snapshotted first, so previews removed
    while the upload runs do not disturb it; their status updates are dropped.
    When at least one item succeeds every snapshotted preview leaves the batch,
    while previews staged during the upload stay pending; otherwise the batch is
    kept so the user can retry.
    """

    storage: SupabaseStorage
    image_repo: EquipmentImageRepository
    batch: PreviewBatch

    async def execute(self, equipment_id: str, uploaded_by: str | None = None) -> UploadBatchReport:
        snapshot = self.batch.snapshot()
        if not snapshot:
            return UploadBatchReport()

        # only one item may be written as primary, the first one flagged
        primary_id = next((p.id for p in snapshot if p.is_primary), None)
        outcomes = await asyncio.gather(
            *(
                self._upload_one(preview, equipment_id, preview.id == primary_id, uploaded_by)
                for preview in snapshot
            )
        )

        report = UploadBatchReport(
            succeeded=[o for o in outcomes if isinstance(o, EquipmentImageEntity)],
            failures=[o for o in outcomes if isinstance(o, UploadFailure)],
        )
        if report.succeeded:
            # previews staged while the upload ran stay pending
            self.batch.discard(p.id for p in snapshot)
            report.batch_cleared = True
        logger.info(
            "Uploaded %d/%d image(s) for equipment %s",
            len(report.succeeded),
            len(snapshot),
            equipment_id,
        )
        return report

    async def _upload_one(
        self,
        preview: PendingPreview,
        equipment_id: str,
        is_primary: bool,
        uploaded_by: str | None,
    ) -> EquipmentImageEntity | UploadFailure:
        result = preview.result
        self.batch.mark_uploading(preview.id, 0)

        try:
            path = self.storage.build_path(equipment_id, result.file_name, result.mime_type)
            url = await asyncio.to_thread(self.storage.put, result.data, path, result.mime_type)
        except Exception as exc:
            # any adapter error fails this item only
            error = (
                exc if isinstance(exc, StorageWriteError) else StorageWriteError(f"Failed to upload image: {exc}")
            )
            logger.error("Error uploading image %s: %s", result.file_name, error)
            self.batch.mark_failed(preview.id)
            return UploadFailure(preview_id=preview.id, file_name=result.file_name, error=error)

        self.batch.mark_uploading(preview.id, 50)
        try:
            entity = await asyncio.to_thread(
                self.image_repo.create,
                equipment_id=equipment_id,
                image_url=url,
                storage_path=path,
                image_name=result.file_name,
                file_size=result.compressed_size,
                mime_type=result.mime_type,
                is_primary=is_primary,
                uploaded_by=uploaded_by,
            )
        except Exception as exc:
            error = (
                exc
                if isinstance(exc, MetadataWriteError)
                else MetadataWriteError(f"Failed to save image to database: {exc}", storage_path=path)
            )
            logger.warning("Orphaned blob %s: metadata write failed: %s", path, error)
            warnings.warn(
                f"Stored {path} but its metadata row was not written", OrphanedBlobWarning, stacklevel=2
            )
            self.batch.mark_failed(preview.id)
            return UploadFailure(
                preview_id=preview.id, file_name=result.file_name, error=error, orphaned_path=path
            )

        self.batch.mark_uploaded(preview.id)
        return entity
