import logging
import os
import random
import time
from typing import List, Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

import config
from errors import ValidationError

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads"


def _unique_name(fieldname: str, original: str) -> str:
    ext = os.path.splitext(original or "")[1].lower()
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"{fieldname}-{suffix}{ext}"


def _write(path: str, data: bytes) -> None:
    with open(path, "wb") as fh:
        fh.write(data)


def check_image(filename: Optional[str], content_type: Optional[str] = None) -> None:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in config.ALLOWED_IMAGE_EXTENSIONS:
        raise ValidationError("Only image files (JPEG, JPG, PNG, WebP) are allowed")
    if content_type and not content_type.startswith("image/"):
        raise ValidationError("Only image files (JPEG, JPG, PNG, WebP) are allowed")


async def save_upload(upload: UploadFile, folder: str, fieldname: str = "image") -> str:
    """Persist one uploaded image under UPLOAD_DIR/<folder> and return its public URL."""
    check_image(upload.filename, upload.content_type)
    data = await upload.read()
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise ValidationError(f"{upload.filename} exceeds the {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB upload limit")
    target_dir = os.path.join(config.UPLOAD_DIR, folder)
    os.makedirs(target_dir, exist_ok=True)
    name = _unique_name(fieldname, upload.filename)
    await run_in_threadpool(_write, os.path.join(target_dir, name), data)
    return f"{URL_PREFIX}/{folder}/{name}"


async def save_uploads(uploads: Optional[List[UploadFile]], folder: str, fieldname: str = "image") -> List[str]:
    urls: List[str] = []
    try:
        for upload in uploads or []:
            if not upload.filename:
                continue
            urls.append(await save_upload(upload, folder, fieldname))
    except ValidationError:
        delete_assets(urls)
        raise
    return urls


def asset_path(url: str) -> Optional[str]:
    if not url or not url.startswith(URL_PREFIX + "/"):
        return None
    relative = url[len(URL_PREFIX) + 1:]
    root = os.path.abspath(config.UPLOAD_DIR)
    path = os.path.abspath(os.path.join(root, relative))
    if not path.startswith(root + os.sep):
        return None
    return path


def delete_asset(url: str) -> bool:
    """Best-effort removal of a stored asset. Never raises."""
    path = asset_path(url)
    if path is None:
        logger.warning("Not deleting asset outside upload dir: %s", url)
        return False
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Failed to delete asset %s: %s", url, e)
        return False


def delete_assets(urls: List[str]) -> int:
    return sum(1 for url in urls if delete_asset(url))
