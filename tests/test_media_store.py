import pytest

from event_ingest.services.media_store import LocalMediaStore, safe_filename


def test_safe_filename():
    assert safe_filename("poster final.jpg") == "poster_final.jpg"
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("פוסטר.png") == "png"
    assert safe_filename(None, "image/png") == "media.png"
    assert safe_filename("", None) == "media.bin"


@pytest.mark.asyncio
async def test_upload_writes_file_and_returns_public_url(tmp_path):
    store = LocalMediaStore(tmp_path / "media", "http://localhost:8080/media/")

    ref = await store.upload(b"\x89PNG", "poster.png", "image/png")

    assert ref.media_id.endswith("_poster.png")
    assert ref.url == f"http://localhost:8080/media/{ref.media_id}"
    assert ref.mimetype == "image/png"
    assert (tmp_path / "media" / ref.media_id).read_bytes() == b"\x89PNG"


@pytest.mark.asyncio
async def test_delete(tmp_path):
    store = LocalMediaStore(tmp_path, "http://localhost:8080/media")
    ref = await store.upload(b"data", "a.jpg", "image/jpeg")

    assert await store.delete(ref.media_id) is True
    assert not (tmp_path / ref.media_id).exists()
    assert await store.delete(ref.media_id) is False


@pytest.mark.asyncio
async def test_delete_refuses_paths_outside_root(tmp_path):
    root = tmp_path / "media"
    root.mkdir()
    outside = tmp_path / "keep.txt"
    outside.write_text("keep")

    store = LocalMediaStore(root, "http://localhost:8080/media")

    assert await store.delete("../keep.txt") is False
    assert outside.exists()
