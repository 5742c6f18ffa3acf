"""Storage service: screenshot uploads to Supabase Storage (prod) or local disk (dev).

Supabase bucket: SUPABASE_STORAGE_BUCKET (default "screenshots").
Local fallback: instance/uploads/ directory.
"""

import logging
import os

import requests
from flask import current_app

from otw.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic",
}


def _get_supabase_config():
    """Return Supabase storage config if available, else None."""
    url = current_app.config.get("SUPABASE_URL")
    key = current_app.config.get("SUPABASE_SERVICE_KEY")
    bucket = current_app.config.get("SUPABASE_STORAGE_BUCKET", "screenshots")

    if url and key:
        return {"url": url.rstrip("/"), "key": key, "bucket": bucket}
    return None


def validate_image(file):
    """Validate an uploaded screenshot (from request.files).

    Raises ValidationError on a missing, non-image, empty or oversized file.
    """
    if not file or not file.filename:
        raise ValidationError("Missing required fields")

    # The browser-reported type decides; extension is only used for naming
    if not (file.content_type or "").startswith("image/"):
        raise ValidationError("Invalid file type. Please upload an image.")

    file.seek(0, os.SEEK_END)
    size = file.tell()
    file.seek(0)

    max_size = current_app.config.get("MAX_SCREENSHOT_SIZE", 10 * 1024 * 1024)
    if size > max_size:
        raise ValidationError(
            f"File is too large ({size / (1024*1024):.1f} MB). "
            f"Maximum is {max_size // (1024*1024)} MB."
        )
    if size == 0:
        raise ValidationError("File is empty.")


def upload_screenshot(file, order_code):
    """Upload a screenshot and return metadata dict.

    Returns dict with:
        filename: original filename
        storage_path: path in bucket or on disk
        content_type: MIME type
        file_size: bytes
        public_url: URL to access the file
    """
    original_name = file.filename
    ext = os.path.splitext(original_name)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        ext = ".jpg"
    storage_path = f"screenshots/{order_code}{ext}"

    file_data = file.read()
    content_type = file.content_type or "image/jpeg"

    # Try Supabase first, fall back to local
    supabase = _get_supabase_config()
    if supabase:
        public_url = _upload_supabase(supabase, storage_path, file_data, content_type)
    else:
        public_url = _upload_local(storage_path, file_data)

    return {
        "filename": original_name,
        "storage_path": storage_path,
        "content_type": content_type,
        "file_size": len(file_data),
        "public_url": public_url,
    }


def _upload_supabase(config, path, data, content_type):
    """Upload to Supabase Storage. Returns public URL."""
    url = f"{config['url']}/storage/v1/object/{config['bucket']}/{path}"

    headers = {
        "Authorization": f"Bearer {config['key']}",
        "Content-Type": content_type,
        "x-upsert": "true",
    }

    try:
        resp = requests.post(url, headers=headers, data=data, timeout=30)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Supabase upload failed: {e}")
        # Fall back to local
        return _upload_local(path, data)

    logger.info(f"Uploaded to Supabase: {path}")
    return f"{config['url']}/storage/v1/object/public/{config['bucket']}/{path}"


def _upload_local(path, data):
    """Write to instance/uploads (dev fallback). Returns URL path."""
    upload_dir = os.path.join(
        current_app.instance_path, "uploads", os.path.dirname(path)
    )
    os.makedirs(upload_dir, exist_ok=True)

    filepath = os.path.join(current_app.instance_path, "uploads", path)
    with open(filepath, "wb") as f:
        f.write(data)

    logger.info(f"Uploaded locally: {filepath}")
    return f"/uploads/{path}"


def delete_file(storage_path):
    """Delete a stored screenshot. Best-effort, does not raise."""
    supabase = _get_supabase_config()
    if supabase:
        try:
            url = f"{supabase['url']}/storage/v1/object/{supabase['bucket']}/{storage_path}"
            headers = {"Authorization": f"Bearer {supabase['key']}"}
            requests.delete(url, headers=headers, timeout=10)
        except requests.RequestException as e:
            logger.warning(f"Failed to delete from Supabase: {e}")
    else:
        filepath = os.path.join(current_app.instance_path, "uploads", storage_path)
        try:
            os.remove(filepath)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to delete local file: {e}")
