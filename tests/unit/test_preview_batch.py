import random

import pytest

from src.domain.entities.candidate_image import CompressedResult
from src.domain.errors import PreviewNotFoundError, ValidationError
from src.domain.services.preview_batch import PreviewBatch
from src.infrastructure.storage.preview_url_registry import PreviewUrlRegistry


def _result(name: str) -> CompressedResult:
    data = name.encode()
    return CompressedResult(
        data=data,
        file_name=name,
        mime_type="image/jpeg",
        original_size=len(data),
        compressed_size=len(data),
        compression_ratio=0.0,
        width=10,
        height=10,
    )


def _primaries(batch: PreviewBatch) -> list[str]:
    return [p.result.file_name for p in batch.snapshot() if p.is_primary]


@pytest.fixture()
def registry():
    return PreviewUrlRegistry()


@pytest.fixture()
def batch(registry):
    return PreviewBatch(registry)


def test_first_item_of_empty_batch_is_primary(batch):
    added = batch.add([_result("a"), _result("b"), _result("c")])
    assert [p.is_primary for p in added] == [True, False, False]
    assert _primaries(batch) == ["a"]


def test_items_added_later_are_never_primary(batch):
    batch.add([_result("a")])
    added = batch.add([_result("b"), _result("c")])
    assert not any(p.is_primary for p in added)
    assert _primaries(batch) == ["a"]


def test_each_preview_gets_a_resolvable_url(batch, registry):
    added = batch.add([_result("a"), _result("b")])
    assert registry.active_count == 2
    assert registry.resolve(added[1].preview_url).data == b"b"


def test_removing_primary_promotes_new_first_item(batch, registry):
    a, b, c = batch.add([_result("a"), _result("b"), _result("c")])
    batch.remove(a.id)

    assert [p.result.file_name for p in batch.snapshot()] == ["b", "c"]
    assert _primaries(batch) == ["b"]
    assert registry.resolve(a.preview_url) is None
    assert registry.active_count == 2


def test_removing_non_primary_keeps_primary(batch):
    a, b, c = batch.add([_result("a"), _result("b"), _result("c")])
    batch.set_primary(c.id)
    batch.remove(a.id)
    assert _primaries(batch) == ["c"]


def test_removing_last_item_empties_batch(batch, registry):
    (a,) = batch.add([_result("a")])
    batch.remove(a.id)
    assert len(batch) == 0
    assert batch.primary is None
    assert registry.active_count == 0


def test_set_primary_is_idempotent(batch):
    a, b, c = batch.add([_result("a"), _result("b"), _result("c")])
    batch.set_primary(b.id)
    once = [(p.id, p.is_primary) for p in batch.snapshot()]
    batch.set_primary(b.id)
    twice = [(p.id, p.is_primary) for p in batch.snapshot()]
    assert once == twice
    assert _primaries(batch) == ["b"]


def test_unknown_ids_raise(batch):
    batch.add([_result("a")])
    with pytest.raises(PreviewNotFoundError):
        batch.remove("preview-missing")
    with pytest.raises(PreviewNotFoundError):
        batch.set_primary("preview-missing")
    assert _primaries(batch) == ["a"]


def test_capacity_is_all_or_nothing(registry):
    batch = PreviewBatch(registry, max_images=3)
    batch.add([_result("a"), _result("b")])
    with pytest.raises(ValidationError, match="maximum of 3"):
        batch.add([_result("c"), _result("d")])
    assert len(batch) == 2
    assert registry.active_count == 2


def test_clear_releases_every_url(batch, registry):
    batch.add([_result("a"), _result("b"), _result("c")])
    batch.clear()
    assert len(batch) == 0
    assert registry.active_count == 0


def test_snapshot_is_a_copy(batch):
    (a,) = batch.add([_result("a")])
    snap = batch.snapshot()
    snap[0].is_primary = False
    snap.clear()
    assert _primaries(batch) == ["a"]


def test_upload_status_hooks(batch):
    (a,) = batch.add([_result("a")])
    batch.mark_uploading(a.id, 0)
    assert batch.get(a.id).is_uploading and batch.get(a.id).upload_progress == 0
    batch.mark_uploading(a.id, 250)
    assert batch.get(a.id).upload_progress == 100
    batch.mark_uploaded(a.id)
    assert not batch.get(a.id).is_uploading and batch.get(a.id).upload_progress == 100
    batch.mark_failed(a.id)
    assert batch.get(a.id).upload_progress is None


def test_discard_drops_only_given_previews(batch, registry):
    a, b, c = batch.add([_result("a"), _result("b"), _result("c")])
    batch.discard([a.id, c.id, "preview-unknown"])

    assert [p.id for p in batch.snapshot()] == [b.id]
    assert _primaries(batch) == ["b"]
    assert registry.resolve(a.preview_url) is None
    assert registry.resolve(b.preview_url).data == b"b"
    assert registry.active_count == 1


def test_discard_keeps_existing_primary(batch):
    a, b, c = batch.add([_result("a"), _result("b"), _result("c")])
    batch.set_primary(c.id)
    batch.discard([a.id])
    assert _primaries(batch) == ["c"]
    batch.discard([])
    assert len(batch) == 2


def test_status_hooks_ignore_removed_previews(batch):
    a, b = batch.add([_result("a"), _result("b")])
    batch.remove(a.id)
    batch.mark_uploading(a.id, 10)
    batch.mark_uploaded(a.id)
    batch.mark_failed(a.id)
    assert [p.id for p in batch.snapshot()] == [b.id]
    assert not batch.get(b.id).is_uploading


@pytest.mark.parametrize("seed", range(10))
def test_exactly_one_primary_after_any_operation_sequence(seed):
    rng = random.Random(seed)
    registry = PreviewUrlRegistry()
    batch = PreviewBatch(registry, max_images=8)
    counter = 0
    for _ in range(60):
        ids = [p.id for p in batch.snapshot()]
        op = rng.choice(["add", "remove", "primary", "discard"])
        if op == "add" or not ids:
            n = rng.randint(1, 3)
            if len(batch) + n > batch.max_images:
                continue
            batch.add([_result(f"img{counter + i}") for i in range(n)])
            counter += n
        elif op == "remove":
            batch.remove(rng.choice(ids))
        elif op == "discard":
            batch.discard(rng.sample(ids, rng.randint(0, len(ids))))
        else:
            batch.set_primary(rng.choice(ids))

        if len(batch):
            assert len(_primaries(batch)) == 1
        assert registry.active_count == len(batch)


class _CountingIssuer:
    def __init__(self):
        self.live = set()
        self._n = 0

    def create(self, data, mime_type):
        self._n += 1
        url = f"/previews/{self._n}"
        self.live.add(url)
        return url

    def revoke(self, url_or_token):
        self.live.discard(url_or_token)


def test_batch_works_with_any_url_issuer():
    issuer = _CountingIssuer()
    batch = PreviewBatch(issuer, max_images=3)
    a, b = batch.add([_result("a"), _result("b")])
    assert issuer.live == {a.preview_url, b.preview_url}
    batch.remove(a.id)
    batch.clear()
    assert issuer.live == set()
