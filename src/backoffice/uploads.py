"""Files posted by the request pages: passports and WhatsApp screenshots."""
import logging
import os
from pathlib import Path

from fastapi import HTTPException

from src.backoffice import identifiers

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/heic", "image/gif"}
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def upload_root() -> Path:
    return Path(os.getenv("UPLOAD_DIR", "uploads"))


def save_image(subdir: str, prefix: str, content_type: str, data: bytes) -> str:
    """Store an uploaded image and return its public path (`/uploads/<subdir>/<name>`)."""
    if not data:
        raise HTTPException(status_code=400, detail="File was not uploaded")
    content_type = (content_type or "").lower()
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Only image files are allowed")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File is too large")

    ext = content_type.split("/")[1] or "jpg"
    filename = f"{prefix}_{identifiers.new_uuid()}.{ext}"
    target_dir = upload_root() / subdir
    target_dir.mkdir(parents=True, exist_ok=True)
    (target_dir / filename).write_bytes(data)

    public_path = f"/uploads/{subdir}/{filename}"
    logger.info("Upload stored: %s (%s bytes)", public_path, len(data))
    return public_path
