from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from src.domain.entities.candidate_image import CandidateImage
from src.domain.entities.pending_preview import PendingPreview
from src.domain.errors import ValidationError
from src.domain.services.compression_service import CompressionOptions, ImageCompressionService
from src.domain.services.image_validator import validate_candidates
from src.domain.services.preview_batch import PreviewBatch

logger = logging.getLogger(__name__)


@dataclass
class StageImagesUseCase:
    """
    Validate, compress and stage one user selection as pending previews.

    The selection is all-or-nothing: one invalid file, or more files than the
    batch has room for, rejects every file with a single ``ValidationError``.
    Files that cannot be decoded are staged uncompressed instead of blocking the user.
    """

    compression: ImageCompressionService
    batch: PreviewBatch
    options: CompressionOptions | None = None

    async def execute(self, candidates: list[CandidateImage]) -> list[PendingPreview]:
        if not candidates:
            return []
        validate_candidates(candidates)
        if len(self.batch) + len(candidates) > self.batch.max_images:
            raise ValidationError(f"A maximum of {self.batch.max_images} images can be uploaded")

        outcome = await asyncio.to_thread(self.compression.compress_images, candidates, self.options)
        for failure in outcome.failures:
            logger.warning("Using original file for %s: %s", failure.candidate.file_name, failure.error)

        previews = self.batch.add(outcome.resolved())
        logger.info(
            "Staged %d image(s), %d uncompressed, batch size %d",
            len(previews),
            len(outcome.failures),
            len(self.batch),
        )
        return previews
