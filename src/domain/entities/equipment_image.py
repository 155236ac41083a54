from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class EquipmentImageEntity:
    id: str
    equipment_id: str
    image_url: str
    storage_path: str  # {equipment_id}/{epoch_ms}_{random}.{ext}
    image_name: str | None
    file_size: int | None  # bytes
    mime_type: str | None
    is_primary: bool
    uploaded_by: str | None
    created_at: datetime
