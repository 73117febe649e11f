import logging
import uuid
from pathlib import Path

from fastapi import HTTPException, UploadFile

from forum.core.config import settings

logger = logging.getLogger(__name__)

AVATAR_MAX_BYTES = 5 * 1024 * 1024
ICON_MAX_BYTES = 2 * 1024 * 1024

CHUNK_SIZE = 64 * 1024


def save_upload(file: UploadFile, folder: str, max_bytes: int) -> str:
    """Store `file` under UPLOAD_DIR/<folder> with a unique name.

    Returns the public path ("/uploads/<folder>/<name>"). Files over
    `max_bytes` are rejected with 413 and nothing is left on disk.
    """
    target_dir = Path(settings.UPLOAD_DIR) / folder
    target_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(file.filename or "").suffix.lower()
    name = f"{uuid.uuid4().hex}{suffix}"
    target = target_dir / name

    written = 0
    with target.open("wb") as out:
        while chunk := file.file.read(CHUNK_SIZE):
            written += len(chunk)
            if written > max_bytes:
                break
            out.write(chunk)
    if written > max_bytes:
        target.unlink(missing_ok=True)
        raise HTTPException(status_code=413, detail="File too large")

    logger.info("Stored upload %s (%d bytes)", target, written)
    return f"/uploads/{folder}/{name}"


def remove_upload(public_path: str | None) -> None:
    """Delete a file previously returned by `save_upload`, if it still exists."""
    if not public_path or not public_path.startswith("/uploads/"):
        return
    relative = public_path.removeprefix("/uploads/")
    Path(settings.UPLOAD_DIR, relative).unlink(missing_ok=True)
