from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol

from src.domain.entities.candidate_image import CompressedResult
from src.domain.entities.pending_preview import PendingPreview
from src.domain.errors import PreviewNotFoundError, ValidationError

DEFAULT_MAX_IMAGES = 10


class PreviewUrlIssuer(Protocol):
    def create(self, data: bytes, mime_type: str) -> str: ...

    def revoke(self, url_or_token: str) -> None: ...


class PreviewBatch:
    """Ordered pending previews for one authoring session.

    Whenever the batch is non-empty exactly one preview is primary. Every preview
    owns a display URL from ``url_registry`` which is revoked when the preview
    leaves the batch.
    """

    def __init__(self, url_registry: PreviewUrlIssuer, max_images: int = DEFAULT_MAX_IMAGES) -> None:
        self.url_registry = url_registry
        self.max_images = max_images
        self._items: list[PendingPreview] = []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def primary(self) -> PendingPreview | None:
        return next((p for p in self._items if p.is_primary), None)

    def snapshot(self) -> list[PendingPreview]:
        return [replace(p) for p in self._items]

    def get(self, preview_id: str) -> PendingPreview:
        item = self._find(preview_id)
        if item is not None:
            return item
        raise PreviewNotFoundError(f"Preview {preview_id} not found")

    def add(self, results: Iterable[CompressedResult]) -> list[PendingPreview]:
        results = list(results)
        if len(self._items) + len(results) > self.max_images:
            raise ValidationError(f"A maximum of {self.max_images} images can be uploaded")
        was_empty = not self._items
        added = [
            PendingPreview(
                id=f"preview-{uuid.uuid4().hex[:12]}",
                result=result,
                preview_url=self.url_registry.create(result.data, result.mime_type),
                is_primary=was_empty and index == 0,
            )
            for index, result in enumerate(results)
        ]
        self._items.extend(added)
        return [replace(p) for p in added]

    def remove(self, preview_id: str) -> None:
        item = self.get(preview_id)
        self._items.remove(item)
        self.url_registry.revoke(item.preview_url)
        if item.is_primary and self._items:
            self._items[0].is_primary = True

    def discard(self, preview_ids: Iterable[str]) -> None:
        """Drop the given previews if still present; unknown ids are skipped."""
        ids = set(preview_ids)
        dropped = [p for p in self._items if p.id in ids]
        if not dropped:
            return
        self._items = [p for p in self._items if p.id not in ids]
        for item in dropped:
            self.url_registry.revoke(item.preview_url)
        if self._items and not any(p.is_primary for p in self._items):
            self._items[0].is_primary = True

    def set_primary(self, preview_id: str) -> None:
        target = self.get(preview_id)
        for item in self._items:
            item.is_primary = item is target

    def clear(self) -> None:
        for item in self._items:
            self.url_registry.revoke(item.preview_url)
        self._items.clear()

    # Upload status hooks; ids that left the batch mid-upload are ignored
    def mark_uploading(self, preview_id: str, progress: int = 0) -> None:
        item = self._find(preview_id)
        if item is not None:
            item.is_uploading = True
            item.upload_progress = max(0, min(100, progress))

    def mark_uploaded(self, preview_id: str) -> None:
        item = self._find(preview_id)
        if item is not None:
            item.is_uploading = False
            item.upload_progress = 100

    def mark_failed(self, preview_id: str) -> None:
        item = self._find(preview_id)
        if item is not None:
            item.is_uploading = False
            item.upload_progress = None

    def _find(self, preview_id: str) -> PendingPreview | None:
        return next((p for p in self._items if p.id == preview_id), None)
