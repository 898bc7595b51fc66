"""Avatar image uploads"""
from fastapi import APIRouter, File, HTTPException, Depends, Request, UploadFile
from pathlib import Path
import logging
import random
import re
import time

from chatbuddy.config import get_settings
from chatbuddy.middleware.auth import require_api_key
from chatbuddy.models.upload import UploadResponse

logger = logging.getLogger(__name__)
router = APIRouter()

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def safe_filename(original_name: str) -> str:
    """``<name>-<ms>-<random><ext>`` with spaces and special characters removed"""
    path = Path(original_name or "upload")
    stem = re.sub(r"\s+", "-", path.stem)
    stem = re.sub(r"[^a-zA-Z0-9\-_]", "", stem) or "image"
    suffix = int(time.time() * 1000)
    return f"{stem}-{suffix}-{random.randint(0, 10**9)}{path.suffix.lower()}"


@router.post("/profile-picture", response_model=UploadResponse, dependencies=[Depends(require_api_key)])
async def upload_profile_picture(request: Request, image: UploadFile = File(None)):
    """Store an avatar image and return its public URL"""
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    extension = Path(image.filename).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS or (image.content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Only image files are allowed (jpeg, jpg, png, gif, webp)")

    content = await image.read(MAX_UPLOAD_BYTES + 1)
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File too large (max 5MB)")

    upload_dir = Path(get_settings().upload_dir)
    filename = safe_filename(image.filename)
    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
        (upload_dir / filename).write_bytes(content)
    except OSError as e:
        logger.error(f"Failed to store upload {image.filename}: {e}")
        raise HTTPException(status_code=500, detail="Failed to upload file")

    base_url = str(request.base_url).rstrip("/")
    if get_settings().is_production:
        base_url = base_url.replace("http://", "https://", 1)

    logger.info(f"Uploaded profile picture {filename} ({len(content)} bytes)")
    return {
        "success": True,
        "url": f"{base_url}/uploads/{filename}",
        "filename": filename,
        "originalName": image.filename,
        "size": len(content),
    }
