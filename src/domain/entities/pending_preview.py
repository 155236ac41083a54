from __future__ import annotations

from dataclasses import dataclass

from src.domain.entities.candidate_image import CompressedResult


@dataclass
class PendingPreview:
    id: str
    result: CompressedResult
    preview_url: str
    is_primary: bool = False
    is_uploading: bool = False
    upload_progress: int | None = None  # 0-100 while uploading, None before start and after failure
