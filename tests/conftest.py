import io
import os
import sys
import tempfile
from pathlib import Path

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Ensure project root is on sys.path so 'src' is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("SUPABASE_DISABLED", "1")
os.environ.setdefault("SUPABASE_STORAGE_LOCAL_DIR", tempfile.mkdtemp(prefix="equipment-images-"))
os.environ.pop("USE_LOCAL_DB", None)


def make_image_bytes(w=4, h=4, color=(128, 64, 32), fmt="PNG", mode="RGB", **save_kwargs) -> bytes:
    channels = len(mode)
    arr = np.zeros((h, w, channels), dtype=np.uint8)
    arr[:, :] = color[:channels]
    img = Image.fromarray(arr)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


def make_noise_bytes(w, h, fmt="JPEG", seed=0, smooth=1, **save_kwargs) -> bytes:
    """Random RGB content; ``smooth > 1`` upsamples coarser noise so it compresses better."""
    rng = np.random.default_rng(seed)
    arr = rng.integers(0, 256, (max(1, h // smooth), max(1, w // smooth), 3), dtype=np.uint8)
    img = Image.fromarray(arr)
    if smooth > 1:
        img = img.resize((w, h), Image.Resampling.BILINEAR)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


@pytest.fixture()
def image_bytes():
    return make_image_bytes


@pytest.fixture()
def noise_bytes():
    return make_noise_bytes


@pytest.fixture(scope="session")
def client() -> TestClient:
    # lazy import after env configured
    from src.main import create_app

    app = create_app()
    return TestClient(app)


@pytest.fixture()
def auth_header() -> dict[str, str]:
    # any token is accepted in disabled mode
    return {"Authorization": "Bearer test-token"}
