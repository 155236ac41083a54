import asyncio

import pytest

from src.application.use_cases.stage_images import StageImagesUseCase
from src.domain.entities.candidate_image import CandidateImage
from src.domain.errors import ValidationError
from src.domain.services.compression_service import ImageCompressionService
from src.domain.services.preview_batch import PreviewBatch
from src.infrastructure.storage.preview_url_registry import PreviewUrlRegistry


@pytest.fixture()
def registry():
    return PreviewUrlRegistry()


def _use_case(registry, max_images=10) -> StageImagesUseCase:
    return StageImagesUseCase(
        compression=ImageCompressionService(),
        batch=PreviewBatch(registry, max_images=max_images),
    )


def test_stages_valid_selection(registry, image_bytes):
    uc = _use_case(registry)
    candidates = [
        CandidateImage(data=image_bytes(40, 30), file_name="front.png", mime_type="image/png"),
        CandidateImage(data=image_bytes(30, 40), file_name="back.png", mime_type="image/png"),
    ]

    previews = asyncio.run(uc.execute(candidates))

    assert [p.result.file_name for p in previews] == ["front.png", "back.png"]
    assert [p.is_primary for p in previews] == [True, False]
    assert len(uc.batch) == 2
    assert registry.resolve(previews[0].preview_url).mime_type == "image/png"


def test_one_invalid_file_rejects_whole_selection(registry, image_bytes):
    uc = _use_case(registry)
    candidates = [
        CandidateImage(data=image_bytes(), file_name="ok.png", mime_type="image/png"),
        CandidateImage(data=b"%PDF-1.7", file_name="manual.pdf", mime_type="application/pdf"),
    ]

    with pytest.raises(ValidationError, match="manual.pdf"):
        asyncio.run(uc.execute(candidates))
    assert len(uc.batch) == 0
    assert registry.active_count == 0


def test_oversized_file_rejected(registry):
    uc = _use_case(registry)
    big = CandidateImage(data=b"", file_name="huge.jpg", mime_type="image/jpeg", size=10 * 1024 * 1024 + 1)
    with pytest.raises(ValidationError):
        asyncio.run(uc.execute([big]))
    assert len(uc.batch) == 0


def test_undecodable_file_staged_uncompressed(registry, image_bytes):
    uc = _use_case(registry)
    broken = CandidateImage(data=b"\xff\xd8\xff\xe0broken", file_name="broken.jpg", mime_type="image/jpeg")
    good = CandidateImage(data=image_bytes(20, 20), file_name="good.png", mime_type="image/png")

    previews = asyncio.run(uc.execute([broken, good]))

    assert [p.result.file_name for p in previews] == ["broken.jpg", "good.png"]
    assert previews[0].result.fallback
    assert previews[0].result.data == broken.data
    assert previews[0].result.compression_ratio == 0.0
    assert not previews[1].result.fallback


def test_selection_beyond_capacity_is_rejected(registry, image_bytes):
    uc = _use_case(registry, max_images=2)
    asyncio.run(uc.execute([CandidateImage(data=image_bytes(), file_name="a.png", mime_type="image/png")]))

    extra = [
        CandidateImage(data=image_bytes(), file_name=f"{n}.png", mime_type="image/png") for n in "bc"
    ]
    with pytest.raises(ValidationError, match="maximum of 2"):
        asyncio.run(uc.execute(extra))
    assert [p.result.file_name for p in uc.batch.snapshot()] == ["a.png"]


def test_empty_selection_is_a_no_op(registry):
    uc = _use_case(registry)
    assert asyncio.run(uc.execute([])) == []
    assert len(uc.batch) == 0
