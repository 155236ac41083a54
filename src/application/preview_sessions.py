from __future__ import annotations

import os
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager

from src.domain.services.preview_batch import DEFAULT_MAX_IMAGES, PreviewBatch
from src.infrastructure.storage.preview_url_registry import PreviewUrlRegistry


class PreviewSessionStore:
    """One pending batch per (user, equipment) authoring session, sharing one URL registry.

    Only batches holding previews, or with a staging request in flight, are kept.
    """

    def __init__(self, max_images: int | None = None) -> None:
        self.max_images = max_images or int(os.getenv("MAX_IMAGES_PER_BATCH", str(DEFAULT_MAX_IMAGES)))
        self.url_registry = PreviewUrlRegistry()
        self._batches: dict[tuple[str, str], PreviewBatch] = {}
        self._staging: Counter[tuple[str, str]] = Counter()

    def __len__(self) -> int:
        return len(self._batches)

    def find(self, user_id: str, equipment_id: str) -> PreviewBatch | None:
        return self._batches.get((user_id, equipment_id))

    def get(self, user_id: str, equipment_id: str) -> PreviewBatch:
        key = (user_id, equipment_id)
        batch = self._batches.get(key)
        if batch is None:
            batch = PreviewBatch(self.url_registry, max_images=self.max_images)
            self._batches[key] = batch
        return batch

    @contextmanager
    def staging(self, user_id: str, equipment_id: str) -> Iterator[PreviewBatch]:
        """Yield the session batch, keeping it registered until staging finishes."""
        key = (user_id, equipment_id)
        self._staging[key] += 1
        try:
            yield self.get(user_id, equipment_id)
        finally:
            self._staging[key] -= 1
            if self._staging[key] <= 0:
                del self._staging[key]
            self.prune(user_id, equipment_id)

    def prune(self, user_id: str, equipment_id: str) -> None:
        """Forget the session batch once it is empty and nobody is staging into it."""
        key = (user_id, equipment_id)
        batch = self._batches.get(key)
        if batch is not None and len(batch) == 0 and not self._staging[key]:
            del self._batches[key]

    def discard(self, user_id: str, equipment_id: str) -> None:
        batch = self._batches.get((user_id, equipment_id))
        if batch is not None:
            batch.clear()
            self.prune(user_id, equipment_id)
