import io
import os
import sys
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
os.environ.setdefault("SUPABASE_STORAGE_LOCAL_DIR", ".local_storage")
os.environ.pop("USE_LOCAL_DB", None)
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("GOOGLE_API_KEY", None)


def make_png_bytes(w=4, h=4, color=(128, 64, 32)) -> bytes:
    arr = np.zeros((h, w, 3), dtype=np.uint8)
    arr[:, :] = color
    img = Image.fromarray(arr, mode="RGB")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class FakeOutpainter:
    """Stands in for the Gemini client: returns a solid image of a chosen size."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.calls = []
        self.size = (64, 64)
        self.color = (10, 200, 10)
        self.fail_on = set()  # call numbers (1-based) that return None

    def synthesize(self, context_images, instruction, *, temperature=None):
        self.calls.append(
            {"context_images": context_images, "instruction": instruction, "temperature": temperature}
        )
        if len(self.calls) in self.fail_on:
            return None
        return make_png_bytes(self.size[0], self.size[1], self.color)


_FAKE_OUTPAINTER = FakeOutpainter()


@pytest.fixture(scope="session")
def client() -> TestClient:
    # lazy import after env configured
    from src.infrastructure.api.dependencies import get_outpainting_client
    from src.main import create_app

    app = create_app()
    app.dependency_overrides[get_outpainting_client] = lambda: _FAKE_OUTPAINTER
    return TestClient(app)


@pytest.fixture()
def outpainter() -> FakeOutpainter:
    _FAKE_OUTPAINTER.reset()
    return _FAKE_OUTPAINTER


@pytest.fixture()
def auth_header() -> dict[str, str]:
    # any token is accepted in disabled mode
    return {"Authorization": "Bearer test-token"}


@pytest.fixture()
def seed_section():
    """Store a solid image and create a section pointing at it (in-memory mode)."""
    from src.domain.constants import SourceType
    from src.infrastructure.database.repositories.image_repository import ImageRepository
    from src.infrastructure.database.repositories.section_repository import SectionRepository
    from src.infrastructure.storage.supabase_storage import SupabaseStorage

    storage = SupabaseStorage(None)
    images = ImageRepository(None)
    sections = SectionRepository(None)

    def _seed(page_id, order, width, height, color=(200, 30, 30), *, name_hint="section",
              import_batch_id=None, segment_index=None):
        array = np.zeros((height, width, 3), dtype=np.float32)
        array[:, :] = np.array(color, dtype=np.float32) / 255.0
        stored = storage.upload_numpy("seed-user", array, "png", name_hint=name_hint)
        image = images.create(
            user_id="seed-user",
            path=stored.path,
            width=stored.width,
            height=stored.height,
            mime_type=stored.content_type,
            source_type=SourceType.IMPORT,
            file_size=stored.size,
            import_batch_id=import_batch_id,
            segment_index=segment_index,
        )
        section = sections.create(page_id=page_id, order=order, image_id=image.id)
        return section, image

    return _seed
