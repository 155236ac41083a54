import uuid
from unittest.mock import Mock

import pytest

from src.application.use_cases.manage_equipment_images import (
    DeleteEquipmentImageUseCase,
    SetPrimaryImageUseCase,
)
from src.domain.errors import StorageWriteError
from src.infrastructure.database.repositories.equipment_image_repository import (
    EquipmentImageRepository,
)
from src.infrastructure.storage.supabase_storage import SupabaseStorage


@pytest.fixture()
def repo():
    # SUPABASE_DISABLED=1 from conftest: in-memory mode
    return EquipmentImageRepository(None)


@pytest.fixture()
def equipment_id():
    return str(uuid.uuid4())


def _create(repo, equipment_id, name, is_primary=False):
    return repo.create(
        equipment_id=equipment_id,
        image_url=f"/local-storage/{equipment_id}/{name}",
        storage_path=f"{equipment_id}/{name}",
        image_name=name,
        file_size=123,
        mime_type="image/jpeg",
        is_primary=is_primary,
        uploaded_by="user_1",
    )


def _primary_ids(repo, equipment_id):
    return [i.id for i in repo.list_by_equipment(equipment_id) if i.is_primary]


def test_create_and_get(repo, equipment_id):
    img = _create(repo, equipment_id, "a.jpg")
    assert repo.get(img.id) == img
    assert img.created_at is not None
    assert repo.get("img_does_not_exist") is None


def test_primary_insert_demotes_existing_primary(repo, equipment_id):
    first = _create(repo, equipment_id, "a.jpg", is_primary=True)
    second = _create(repo, equipment_id, "b.jpg", is_primary=True)
    assert _primary_ids(repo, equipment_id) == [second.id]
    assert not repo.get(first.id).is_primary


def test_primary_is_scoped_per_equipment(repo, equipment_id):
    other = str(uuid.uuid4())
    a = _create(repo, equipment_id, "a.jpg", is_primary=True)
    b = _create(repo, other, "b.jpg", is_primary=True)
    assert _primary_ids(repo, equipment_id) == [a.id]
    assert _primary_ids(repo, other) == [b.id]


def test_list_puts_primary_first(repo, equipment_id):
    _create(repo, equipment_id, "a.jpg")
    primary = _create(repo, equipment_id, "b.jpg", is_primary=True)
    _create(repo, equipment_id, "c.jpg")
    items = repo.list_by_equipment(equipment_id)
    assert len(items) == 3
    assert items[0].id == primary.id
    assert all(i.equipment_id == equipment_id for i in items)


def test_set_primary_use_case(repo, equipment_id):
    a = _create(repo, equipment_id, "a.jpg", is_primary=True)
    b = _create(repo, equipment_id, "b.jpg")

    updated = SetPrimaryImageUseCase(image_repo=repo).execute(equipment_id, b.id)

    assert updated.is_primary
    assert _primary_ids(repo, equipment_id) == [b.id]
    assert not repo.get(a.id).is_primary


def test_set_primary_rejects_image_of_other_equipment(repo, equipment_id):
    img = _create(repo, equipment_id, "a.jpg")
    with pytest.raises(ValueError, match="Image not found"):
        SetPrimaryImageUseCase(image_repo=repo).execute(str(uuid.uuid4()), img.id)


def test_delete_use_case_removes_blob_and_row(repo, equipment_id):
    img = _create(repo, equipment_id, "a.jpg")
    storage = Mock(spec=SupabaseStorage)

    assert DeleteEquipmentImageUseCase(storage=storage, image_repo=repo).execute(equipment_id, img.id)

    storage.delete.assert_called_once_with(f"{equipment_id}/a.jpg")
    assert repo.get(img.id) is None
    assert repo.list_by_equipment(equipment_id) == []


def test_delete_use_case_still_removes_row_when_storage_fails(repo, equipment_id):
    img = _create(repo, equipment_id, "a.jpg")
    storage = Mock(spec=SupabaseStorage)
    storage.delete.side_effect = StorageWriteError("bucket unavailable")

    assert DeleteEquipmentImageUseCase(storage=storage, image_repo=repo).execute(equipment_id, img.id)
    assert repo.get(img.id) is None


def test_delete_unknown_image(repo, equipment_id):
    storage = Mock(spec=SupabaseStorage)
    with pytest.raises(ValueError):
        DeleteEquipmentImageUseCase(storage=storage, image_repo=repo).execute(equipment_id, "img_missing")
    storage.delete.assert_not_called()
    assert repo.delete("img_missing") is False
