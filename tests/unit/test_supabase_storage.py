import pytest

from src.infrastructure.storage.supabase_storage import SupabaseStorage


@pytest.fixture
def storage(tmp_path, monkeypatch):
    monkeypatch.setenv("SUPABASE_DISABLED", "1")
    monkeypatch.setenv("SUPABASE_STORAGE_LOCAL_DIR", str(tmp_path / "store"))
    return SupabaseStorage(None)


def test_fetch_local_url_reads_stored_object(storage):
    stored = storage._put("user_1", "section", b"pixels", "image/png", "png")
    assert storage.fetch(f"/local-storage/{stored}") == b"pixels"


def test_fetch_refuses_paths_outside_local_dir(storage, tmp_path):
    secret = tmp_path / "secret.txt"
    secret.write_bytes(b"do not serve")

    with pytest.raises(RuntimeError):
        storage.fetch("/local-storage/../secret.txt")
    with pytest.raises(RuntimeError):
        storage.download_bytes(str(secret))
