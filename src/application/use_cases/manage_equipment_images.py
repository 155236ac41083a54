from __future__ import annotations

import logging
from dataclasses import dataclass

from src.domain.entities.equipment_image import EquipmentImageEntity
from src.domain.errors import StorageWriteError
from src.infrastructure.database.repositories.equipment_image_repository import (
    EquipmentImageRepository,
)
from src.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger(__name__)


def _get_owned(repo: EquipmentImageRepository, image_id: str, equipment_id: str) -> EquipmentImageEntity:
    image = repo.get(image_id)
    if image is None or image.equipment_id != equipment_id:
        raise ValueError("Image not found")
    return image


@dataclass
class SetPrimaryImageUseCase:
    image_repo: EquipmentImageRepository

    def execute(self, equipment_id: str, image_id: str) -> EquipmentImageEntity:
        _get_owned(self.image_repo, image_id, equipment_id)
        return self.image_repo.set_primary(image_id, equipment_id)


@dataclass
class DeleteEquipmentImageUseCase:
    """Remove the stored blob, then the metadata row.

    A failed blob delete is logged and does not keep the row alive.
    """

    storage: SupabaseStorage
    image_repo: EquipmentImageRepository

    def execute(self, equipment_id: str, image_id: str) -> bool:
        image = _get_owned(self.image_repo, image_id, equipment_id)
        if image.storage_path:
            try:
                self.storage.delete(image.storage_path)
            except StorageWriteError as exc:
                logger.warning("Failed to delete %s from storage: %s", image.storage_path, exc)
        return self.image_repo.delete(image_id)
