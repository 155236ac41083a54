from __future__ import annotations

import itertools
import os
from dataclasses import replace
from datetime import UTC, datetime

from supabase import Client

from src.domain.entities.equipment_image import EquipmentImageEntity
from src.domain.errors import MetadataWriteError
from src.infrastructure.database.postgres_client import get_postgres_client

TABLE = "equipment_images"
_PG_CLEAR_PRIMARY = "UPDATE equipment_images SET is_primary = FALSE WHERE equipment_id = %s AND is_primary"

# module-level in-memory store for disabled mode
_MEM_IMAGES: dict[str, EquipmentImageEntity] = {}
_MEM_IDS = itertools.count(1)


class EquipmentImageRepository:
    """Rows of ``equipment_images``; at most one primary row per equipment."""

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _row_to_entity(self, row: dict) -> EquipmentImageEntity:
        # PostgreSQL returns datetime objects, Supabase returns ISO strings
        created_at = row["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return EquipmentImageEntity(
            id=str(row["id"]),
            equipment_id=str(row["equipment_id"]),
            image_url=row["image_url"],
            storage_path=row.get("storage_path") or "",
            image_name=row.get("image_name"),
            file_size=row.get("file_size"),
            mime_type=row.get("mime_type"),
            is_primary=bool(row.get("is_primary", False)),
            uploaded_by=row.get("uploaded_by"),
            created_at=created_at,
        )

    def create(
        self,
        equipment_id: str,
        image_url: str,
        storage_path: str,
        image_name: str | None = None,
        file_size: int | None = None,
        mime_type: str | None = None,
        is_primary: bool = False,
        uploaded_by: str | None = None,
    ) -> EquipmentImageEntity:
        """Insert a row; a primary insert demotes the equipment's current primary first."""
        now = datetime.now(UTC)

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            try:
                with self.pg_client.transaction() as cursor:
                    if is_primary:
                        cursor.execute(_PG_CLEAR_PRIMARY, (equipment_id,))
                    cursor.execute(
                        """
                        INSERT INTO equipment_images (
                            equipment_id, image_url, storage_path, image_name,
                            file_size, mime_type, is_primary, uploaded_by, created_at
                        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING *
                        """,
                        (
                            equipment_id, image_url, storage_path, image_name,
                            file_size, mime_type, is_primary, uploaded_by, now,
                        ),
                    )
                    row = cursor.fetchone()
                return self._row_to_entity(dict(row))
            except Exception as exc:
                raise MetadataWriteError(
                    f"Failed to save image to database: {exc}", storage_path=storage_path
                ) from exc

        # In-memory mode
        if self.disabled or self.client is None:
            if is_primary:
                self.clear_primary(equipment_id)
            entity = EquipmentImageEntity(
                id=f"img_{next(_MEM_IDS)}",
                equipment_id=equipment_id,
                image_url=image_url,
                storage_path=storage_path,
                image_name=image_name,
                file_size=file_size,
                mime_type=mime_type,
                is_primary=is_primary,
                uploaded_by=uploaded_by,
                created_at=now,
            )
            _MEM_IMAGES[entity.id] = entity
            return entity

        # Supabase mode
        try:  # pragma: no cover - network
            if is_primary:
                self.clear_primary(equipment_id)
            data = {
                "equipment_id": equipment_id,
                "image_url": image_url,
                "storage_path": storage_path,
                "image_name": image_name,
                "file_size": file_size,
                "mime_type": mime_type,
                "is_primary": is_primary,
                "uploaded_by": uploaded_by,
                "created_at": now.isoformat(),
            }
            res = self.client.table(TABLE).insert(data).execute()
            return self._row_to_entity(res.data[0])
        except Exception as exc:
            raise MetadataWriteError(
                f"Failed to save image to database: {exc}", storage_path=storage_path
            ) from exc

    def list_by_equipment(self, equipment_id: str) -> list[EquipmentImageEntity]:
        """Primary image first, then newest first."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                SELECT * FROM equipment_images WHERE equipment_id = %s
                ORDER BY is_primary DESC, created_at DESC
            """
            rows = self.pg_client.fetch_all(query, (equipment_id,))
            return [self._row_to_entity(row) for row in rows]

        # In-memory mode
        if self.disabled or self.client is None:
            items = [img for img in _MEM_IMAGES.values() if img.equipment_id == equipment_id]
            items.sort(key=lambda i: i.created_at, reverse=True)
            items.sort(key=lambda i: i.is_primary, reverse=True)
            return items

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table(TABLE)
                .select("*")
                .eq("equipment_id", equipment_id)
                .order("is_primary", desc=True)
                .order("created_at", desc=True)
                .execute()
            )
            return [self._row_to_entity(row) for row in res.data or []]
        except Exception as exc:
            raise RuntimeError(f"Failed to fetch images: {exc}") from exc

    def get(self, image_id: str) -> EquipmentImageEntity | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            row = self.pg_client.fetch_one("SELECT * FROM equipment_images WHERE id = %s", (image_id,))
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self.disabled or self.client is None:
            return _MEM_IMAGES.get(image_id)

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table(TABLE).select("*").eq("id", image_id).single().execute()
            return self._row_to_entity(res.data) if res.data else None
        except Exception:
            return None

    def clear_primary(self, equipment_id: str) -> None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            self.pg_client.execute(_PG_CLEAR_PRIMARY, (equipment_id,))
            return

        # In-memory mode
        if self.disabled or self.client is None:
            for image_id, img in list(_MEM_IMAGES.items()):
                if img.equipment_id == equipment_id and img.is_primary:
                    _MEM_IMAGES[image_id] = replace(img, is_primary=False)
            return

        # Supabase mode
        self.client.table(TABLE).update({"is_primary": False}).eq(  # pragma: no cover - network
            "equipment_id", equipment_id
        ).eq("is_primary", True).execute()

    def set_primary(self, image_id: str, equipment_id: str) -> EquipmentImageEntity:
        """Make ``image_id`` the only primary image of ``equipment_id``."""
        try:
            # PostgreSQL mode
            if self.use_local_db and self.pg_client:
                with self.pg_client.transaction() as cursor:
                    cursor.execute(_PG_CLEAR_PRIMARY, (equipment_id,))
                    cursor.execute(
                        "UPDATE equipment_images SET is_primary = TRUE WHERE id = %s RETURNING *",
                        (image_id,),
                    )
                    row = cursor.fetchone()
                return self._row_to_entity(dict(row))

            self.clear_primary(equipment_id)

            # In-memory mode
            if self.disabled or self.client is None:
                entity = replace(_MEM_IMAGES[image_id], is_primary=True)
                _MEM_IMAGES[image_id] = entity
                return entity

            # Supabase mode
            res = self.client.table(TABLE).update({"is_primary": True}).eq("id", image_id).execute()
            return self._row_to_entity(res.data[0])
        except Exception as exc:
            raise MetadataWriteError(f"Failed to set primary image: {exc}") from exc

    def delete(self, image_id: str) -> bool:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            affected = self.pg_client.execute("DELETE FROM equipment_images WHERE id = %s", (image_id,))
            return affected > 0

        # In-memory mode
        if self.disabled or self.client is None:
            return _MEM_IMAGES.pop(image_id, None) is not None

        # Supabase mode
        try:  # pragma: no cover - network
            self.client.table(TABLE).delete().eq("id", image_id).execute()
            return True
        except Exception as exc:
            raise MetadataWriteError(f"Failed to delete image from database: {exc}") from exc
