from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path

from supabase import Client

from src.domain.errors import StorageWriteError

logger = logging.getLogger(__name__)

_EXT_BY_MIME = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


class SupabaseStorage:
    """Storage adapter for Supabase Storage with a local fake fallback."""

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.bucket = os.getenv("SUPABASE_STORAGE_BUCKET", "equipment-images")
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.local_dir = Path(os.getenv("SUPABASE_STORAGE_LOCAL_DIR", ".local_storage"))
        if self.disabled:
            self.local_dir.mkdir(parents=True, exist_ok=True)

    @property
    def is_local(self) -> bool:
        return self.disabled or self.client is None

    @staticmethod
    def build_path(equipment_id: str, file_name: str, mime_type: str | None = None) -> str:
        """Unique object path ``{equipment_id}/{epoch_ms}_{random}.{ext}``."""
        if equipment_id in ("", ".", "..") or "/" in equipment_id or "\\" in equipment_id:
            raise ValueError(f"Invalid equipment id for a storage path: {equipment_id!r}")
        ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
        if not ext:
            ext = _EXT_BY_MIME.get((mime_type or "").lower(), "bin")
        return f"{equipment_id}/{int(time.time() * 1000)}_{uuid.uuid4().hex[:10]}.{ext}"

    def _local_path(self, path: str) -> Path:
        root = self.local_dir.resolve()
        full_path = (root / path).resolve()
        if not full_path.is_relative_to(root):
            raise StorageWriteError(f"Storage path escapes the storage directory: {path}")
        return full_path

    def put(self, data: bytes, path: str, content_type: str) -> str:
        """Store ``data`` at ``path`` and return its public URL."""
        if self.is_local:
            full_path = self._local_path(path)
            try:
                full_path.parent.mkdir(parents=True, exist_ok=True)
                full_path.write_bytes(data)
            except OSError as exc:
                raise StorageWriteError(f"Failed to upload image: {exc}") from exc
            return self.get_public_url(path)
        try:
            bucket = self.client.storage.from_(self.bucket)
            bucket.upload(
                path=path,
                file=data,
                file_options={"content-type": content_type, "cache-control": "3600", "upsert": "false"},
            )
            return bucket.get_public_url(path)
        except Exception as exc:
            raise StorageWriteError(f"Failed to upload image: {exc}") from exc

    def get_public_url(self, path: str) -> str:
        if self.is_local:
            return f"/local-storage/{path}"
        return self.client.storage.from_(self.bucket).get_public_url(path)

    def delete(self, path: str) -> None:
        if self.is_local:
            full_path = self._local_path(path)
            if full_path.exists():
                full_path.unlink()
            return
        try:
            self.client.storage.from_(self.bucket).remove([path])
        except Exception as exc:
            raise StorageWriteError(f"Storage delete failed: {exc}") from exc
