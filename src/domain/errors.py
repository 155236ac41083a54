from __future__ import annotations


class ValidationError(ValueError):
    """A selected file was rejected before any processing (type, size or batch limit)."""


class DecodeError(ValueError):
    """Image bytes could not be parsed."""


class PreviewNotFoundError(KeyError):
    """No pending preview with the given id in the batch."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Preview not found"


class StorageWriteError(RuntimeError):
    """Persisting bytes to object storage failed."""


class MetadataWriteError(RuntimeError):
    """Writing the image metadata row failed.

    When raised after a successful storage write, ``storage_path`` points at the
    blob that is now orphaned.
    """

    def __init__(self, message: str, storage_path: str | None = None) -> None:
        super().__init__(message)
        self.storage_path = storage_path


class OrphanedBlobWarning(RuntimeWarning):
    """A blob was stored but its metadata row was never written."""
