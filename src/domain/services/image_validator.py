from __future__ import annotations

from collections.abc import Iterable

from src.domain.entities.candidate_image import CandidateImage
from src.domain.errors import ValidationError

ALLOWED_MIME_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
)
MAX_IMAGE_SIZE = 10 * 1024 * 1024  # 10 MiB

INVALID_FILE_MESSAGE = "Please select image files (JPG, PNG, GIF, WebP) no larger than 10MB"


def is_valid_image_file(mime_type: str | None, size: int) -> bool:
    if not mime_type:
        return False
    return mime_type.strip().lower() in ALLOWED_MIME_TYPES and 0 <= size <= MAX_IMAGE_SIZE


def validate_candidates(candidates: Iterable[CandidateImage]) -> None:
    """Reject the whole selection if any file fails the type/size check."""
    for candidate in candidates:
        if not is_valid_image_file(candidate.mime_type, candidate.size):
            raise ValidationError(f"{INVALID_FILE_MESSAGE} (rejected: {candidate.file_name})")
