import asyncio
import io

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

import config
import storage
from errors import ValidationError


def upload(filename, data=b"\x89PNG....", content_type="image/png"):
    return UploadFile(io.BytesIO(data), filename=filename, headers=Headers({"content-type": content_type}))


def test_save_upload_writes_under_folder(upload_dir):
    url = asyncio.run(storage.save_upload(upload("Vase.PNG"), "products", "images"))
    assert url.startswith("/uploads/products/images-")
    assert url.endswith(".png")
    assert (upload_dir / "products" / url.rsplit("/", 1)[1]).read_bytes() == b"\x89PNG...."


@pytest.mark.parametrize("filename,content_type", [
    ("notes.txt", "text/plain"),
    ("anim.gif", "image/gif"),
    ("sneaky.jpg", "application/pdf"),
])
def test_save_upload_rejects_non_images(upload_dir, filename, content_type):
    with pytest.raises(ValidationError):
        asyncio.run(storage.save_upload(upload(filename, content_type=content_type), "products"))
    assert not (upload_dir / "products").exists()


def test_save_upload_size_limit(upload_dir, monkeypatch):
    monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 4)
    with pytest.raises(ValidationError, match="upload limit"):
        asyncio.run(storage.save_upload(upload("big.jpg", b"12345", "image/jpeg"), "products"))


def test_save_uploads_cleans_up_on_failure(upload_dir):
    files = [upload("a.jpg", content_type="image/jpeg"), upload("b.exe", content_type="image/jpeg")]
    with pytest.raises(ValidationError):
        asyncio.run(storage.save_uploads(files, "products"))
    assert list((upload_dir / "products").iterdir()) == []


def test_delete_asset(upload_dir):
    (upload_dir / "products").mkdir(parents=True)
    target = upload_dir / "products" / "x.jpg"
    target.write_bytes(b"x")
    assert storage.delete_asset("/uploads/products/x.jpg") is True
    assert not target.exists()
    assert storage.delete_asset("/uploads/products/x.jpg") is False


def test_delete_asset_ignores_paths_outside_upload_dir(upload_dir, tmp_path):
    outside = tmp_path / "secret.txt"
    outside.write_text("keep")
    assert storage.delete_asset("/uploads/../secret.txt") is False
    assert storage.delete_asset("https://cdn.example.org/a.jpg") is False
    assert outside.exists()
