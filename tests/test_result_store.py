import os
import time

import pytest

from services.result_store import ResultStore, purge_directory


async def test_save_names_are_unique_per_step(store):
    final = await store.save(b"final", 42)
    step0 = await store.save(b"s0", 42, step_index=0)
    step3 = await store.save(b"s3", 42, step_index=3)

    assert final == "/results/improved-42.png"
    assert step0 == "/results/improved-42-step-1.png"
    assert step3 == "/results/improved-42-step-4.png"
    assert len({final, step0, step3}) == 3
    assert store.resolve(step3).read_bytes() == b"s3"


async def test_save_rejects_empty_bytes(store):
    with pytest.raises(ValueError):
        await store.save(b"", 1)


async def test_copy_creates_final_image(store):
    ref = await store.save(b"last step", 7, step_index=2)

    final = await store.copy(ref, 7)

    assert final == "/results/improved-7.png"
    assert store.resolve(final).read_bytes() == b"last step"


async def test_save_original_and_upload(store):
    original = await store.save_original(b"jpeg", 9, "image/jpeg")
    upload = await store.save_upload(b"jpeg", "image/jpeg", 9)

    assert original == "/results/original-9.jpg"
    assert upload.parent == store.uploads_dir
    assert upload.name.startswith("upload-9-") and upload.suffix == ".jpg"


@pytest.mark.parametrize(
    "ref",
    [
        "improved-5.png",
        "/results/improved-5.png",
        "/tmp/elsewhere/public/results/improved-5.png",
        "/results/improved-5.png?t=123",
        "C:\\out\\improved-5.png",
    ],
)
def test_normalize_ref_accepts_names_paths_and_urls(store, ref):
    assert store.normalize_ref(ref) == "/results/improved-5.png"


def test_resolve_rejects_traversal(store):
    with pytest.raises(ValueError):
        store.resolve("/results/..")
    with pytest.raises(ValueError):
        store.normalize_ref("")


def _touch(path, age_seconds, now):
    path.write_bytes(b"x")
    os.utime(path, (now - age_seconds, now - age_seconds))


def test_purge_older_than_removes_only_stale_files(store):
    now = time.time()
    _touch(store.results_dir / "old.png", 7200, now)
    _touch(store.results_dir / "new.png", 60, now)
    _touch(store.uploads_dir / "upload-old.jpg", 7200, now)

    removed = store.purge_older_than(3600, now=now)

    assert removed == 2
    assert sorted(p.name for p in store.results_dir.iterdir()) == ["new.png"]
    assert list(store.uploads_dir.iterdir()) == []


def test_purge_tolerates_files_vanishing(tmp_path, monkeypatch):
    now = time.time()
    _touch(tmp_path / "a.png", 7200, now)
    _touch(tmp_path / "b.png", 7200, now)
    real_unlink = os.unlink

    def flaky_unlink(path, *args, **kwargs):
        if str(path).endswith("a.png"):
            real_unlink(path)
            raise FileNotFoundError(path)
        if str(path).endswith("b.png"):
            raise PermissionError(path)
        return real_unlink(path, *args, **kwargs)

    monkeypatch.setattr(os, "unlink", flaky_unlink)

    removed = purge_directory(tmp_path, 3600, now=now)

    assert removed == 0
    assert (tmp_path / "b.png").exists()


def test_purge_missing_directory_is_noop(tmp_path):
    assert purge_directory(tmp_path / "missing", 10) == 0


def test_store_creates_directories(tmp_path):
    store = ResultStore(tmp_path / "r", tmp_path / "u")

    assert store.results_dir.is_dir() and store.uploads_dir.is_dir()
