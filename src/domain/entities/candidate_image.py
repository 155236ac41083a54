from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CandidateImage:
    """A user-selected file that is neither compressed nor persisted yet."""

    data: bytes
    file_name: str
    mime_type: str
    size: int = field(default=-1)  # declared size; -1 means len(data)

    def __post_init__(self) -> None:
        if self.size < 0:
            object.__setattr__(self, "size", len(self.data))


@dataclass(frozen=True)
class CompressedResult:
    data: bytes
    file_name: str
    mime_type: str
    original_size: int
    compressed_size: int
    compression_ratio: float  # (original - compressed) / original, may be <= 0
    width: int
    height: int
    fallback: bool = False  # True when the original bytes were kept after a decode failure

    @property
    def savings_percent(self) -> float:
        return self.compression_ratio * 100.0

    @classmethod
    def uncompressed(cls, candidate: CandidateImage) -> CompressedResult:
        return cls(
            data=candidate.data,
            file_name=candidate.file_name,
            mime_type=candidate.mime_type,
            original_size=candidate.size,
            compressed_size=candidate.size,
            compression_ratio=0.0,
            width=0,
            height=0,
            fallback=True,
        )
