from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from src.domain.entities.candidate_image import CandidateImage, CompressedResult
from src.domain.errors import DecodeError

logger = logging.getLogger(__name__)

_FORMAT_BY_MIME = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/webp": "WEBP",
}
_LOSSY_FORMATS = frozenset({"JPEG", "WEBP"})


@dataclass(frozen=True)
class CompressionOptions:
    """Limits for one compression pass.

    ``quality`` and ``min_quality`` are factors in (0, 1]. Lossy encodes that
    overshoot ``max_file_size`` are retried at ``quality_step`` lower quality, for
    at most ``max_attempts`` encodes and never below ``min_quality``.
    """

    max_width: int = 1920
    max_height: int = 1080
    quality: float = 0.8
    max_file_size: int = 2 * 1024 * 1024
    min_quality: float = 0.4
    quality_step: float = 0.1
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if self.max_width <= 0 or self.max_height <= 0:
            raise ValueError("max_width and max_height must be positive")
        if not 0.0 < self.quality <= 1.0:
            raise ValueError("quality must be in (0, 1]")
        if not 0.0 < self.min_quality <= self.quality:
            raise ValueError("min_quality must be in (0, quality]")
        if self.max_file_size <= 0:
            raise ValueError("max_file_size must be positive")
        if self.quality_step <= 0 or self.max_attempts < 1:
            raise ValueError("quality_step must be positive and max_attempts at least 1")

    @classmethod
    def from_env(cls) -> CompressionOptions:
        defaults = cls()
        return cls(
            max_width=int(os.getenv("IMAGE_MAX_WIDTH", str(defaults.max_width))),
            max_height=int(os.getenv("IMAGE_MAX_HEIGHT", str(defaults.max_height))),
            quality=float(os.getenv("IMAGE_QUALITY", str(defaults.quality))),
            max_file_size=int(os.getenv("IMAGE_MAX_FILE_SIZE", str(defaults.max_file_size))),
        )


@dataclass(frozen=True)
class CompressionFailure:
    index: int
    candidate: CandidateImage
    error: DecodeError


@dataclass
class BatchCompressionResult:
    """Per-candidate outcome of ``compress_images`` keyed by input position."""

    results: dict[int, CompressedResult] = field(default_factory=dict)
    failures: list[CompressionFailure] = field(default_factory=list)

    @property
    def successful(self) -> list[CompressedResult]:
        return [self.results[i] for i in sorted(self.results)]

    def resolved(self) -> list[CompressedResult]:
        """Input-ordered results with failed candidates passed through uncompressed."""
        failed = {f.index: f.candidate for f in self.failures}
        out: list[CompressedResult] = []
        for i in range(len(self.results) + len(self.failures)):
            if i in self.results:
                out.append(self.results[i])
            else:
                out.append(CompressedResult.uncompressed(failed[i]))
        return out


class ImageCompressionService:
    """Pillow-based resize and re-encode of user-selected images, entirely in memory."""

    def __init__(self, options: CompressionOptions | None = None) -> None:
        self.options = options or CompressionOptions()

    # Uniform downscale so both sides fit, never upscale
    @staticmethod
    def calculate_dimensions(
        width: int, height: int, max_width: int, max_height: int
    ) -> tuple[int, int]:
        if width <= max_width and height <= max_height:
            return width, height
        ratio = min(max_width / width, max_height / height)
        new_w = min(max_width, max(1, round(width * ratio)))
        new_h = min(max_height, max(1, round(height * ratio)))
        return new_w, new_h

    def should_compress(self, candidate: CandidateImage, options: CompressionOptions | None = None) -> bool:
        opts = options or self.options
        return candidate.size > opts.max_file_size

    @staticmethod
    def get_image_dimensions(data: bytes) -> tuple[int, int]:
        try:
            with Image.open(BytesIO(data)) as img:
                return img.size
        except (UnidentifiedImageError, OSError) as exc:
            raise DecodeError(f"Cannot read image dimensions: {exc}") from exc

    @staticmethod
    def format_file_size(size: int) -> str:
        if size <= 0:
            return "0 Bytes"
        units = ["Bytes", "KB", "MB", "GB"]
        value = float(size)
        i = 0
        while value >= 1024 and i < len(units) - 1:
            value /= 1024
            i += 1
        return f"{round(value, 2):g} {units[i]}"

    def compress_image(
        self, candidate: CandidateImage, options: CompressionOptions | None = None
    ) -> CompressedResult:
        opts = options or self.options
        img, detected = self._decode(candidate.data)
        fmt = _FORMAT_BY_MIME.get(candidate.mime_type.strip().lower()) or self._fallback_format(detected)

        src_w, src_h = img.size
        width, height = self.calculate_dimensions(src_w, src_h, opts.max_width, opts.max_height)
        resized = (width, height) != (src_w, src_h)
        if resized:
            img = img.resize((width, height), Image.Resampling.LANCZOS)

        img = self._prepare_mode(img, fmt)
        quality = opts.quality
        data = self._encode(img, fmt, quality)
        attempts = 1
        while fmt in _LOSSY_FORMATS and len(data) > opts.max_file_size and attempts < opts.max_attempts:
            next_quality = max(opts.min_quality, round(quality - opts.quality_step, 4))
            if next_quality >= quality:
                break
            quality = next_quality
            data = self._encode(img, fmt, quality)
            attempts += 1

        if len(data) > opts.max_file_size:
            logger.info(
                "%s still %d bytes after %d encode(s), accepting", candidate.file_name, len(data), attempts
            )
        if not resized and len(data) >= candidate.size:
            # re-encoding did not help, keep the original bytes
            data = candidate.data

        compressed_size = len(data)
        ratio = (
            (candidate.size - compressed_size) / candidate.size if candidate.size > 0 else 0.0
        )
        return CompressedResult(
            data=data,
            file_name=candidate.file_name,
            mime_type=candidate.mime_type,
            original_size=candidate.size,
            compressed_size=compressed_size,
            compression_ratio=ratio,
            width=width,
            height=height,
        )

    def compress_images(
        self, candidates: Sequence[CandidateImage], options: CompressionOptions | None = None
    ) -> BatchCompressionResult:
        batch = BatchCompressionResult()
        for index, candidate in enumerate(candidates):
            try:
                batch.results[index] = self.compress_image(candidate, options)
            except DecodeError as exc:
                logger.warning("Error compressing %s: %s", candidate.file_name, exc)
                batch.failures.append(CompressionFailure(index=index, candidate=candidate, error=exc))
        return batch

    @staticmethod
    def _decode(data: bytes) -> tuple[Image.Image, str | None]:
        try:
            img = Image.open(BytesIO(data))
            img.load()
            # first frame only for animated GIF/WEBP
            return ImageOps.exif_transpose(img) or img, img.format
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
            raise DecodeError(f"Unable to load image: {exc}") from exc

    @staticmethod
    def _fallback_format(detected: str | None) -> str:
        fmt = (detected or "").upper()
        return fmt if fmt in _FORMAT_BY_MIME.values() else "PNG"

    @staticmethod
    def _prepare_mode(img: Image.Image, fmt: str) -> Image.Image:
        has_alpha = img.mode in ("RGBA", "LA", "PA") or (
            img.mode == "P" and "transparency" in img.info
        )
        if fmt == "JPEG":
            if has_alpha:
                rgba = img.convert("RGBA")
                flat = Image.new("RGB", rgba.size, (255, 255, 255))
                flat.paste(rgba, mask=rgba.getchannel("A"))
                return flat
            if img.mode not in ("RGB", "L"):
                return img.convert("RGB")
            return img
        if fmt == "WEBP" and img.mode not in ("RGB", "RGBA"):
            return img.convert("RGBA" if has_alpha else "RGB")
        if fmt == "PNG" and img.mode == "CMYK":
            return img.convert("RGB")
        return img

    @staticmethod
    def _encode(img: Image.Image, fmt: str, quality: float) -> bytes:
        buf = BytesIO()
        q = min(100, max(1, round(quality * 100)))
        if fmt == "JPEG":
            img.save(buf, format=fmt, quality=q, optimize=True)
        elif fmt == "WEBP":
            img.save(buf, format=fmt, quality=q, method=4)
        else:
            img.save(buf, format=fmt, optimize=True)
        return buf.getvalue()
