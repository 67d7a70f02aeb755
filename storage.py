"""
Image bucket helpers: validation, resize/compress, upload and removal.

Paths are deterministic per entity: sections/<id>.webp, folders/<id>.webp,
cards/<id>.webp. Uploads overwrite (upsert) so a replaced image keeps its
public URL.
"""

import io
from urllib.parse import urlparse

from PIL import Image

from supabase_client import IMAGES_BUCKET

VALID_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
MAX_IMAGE_BYTES = 5 * 1024 * 1024


def validate_image_file(content_type: str, size: int) -> bool:
    if content_type not in VALID_IMAGE_TYPES:
        raise ValueError("Invalid file type. Use JPG, PNG or WebP.")
    if size > MAX_IMAGE_BYTES:
        raise ValueError("File is too large. Maximum 5MB.")
    return True


def process_image(data: bytes, max_width: int = 800, max_height: int = 600,
                  quality: int = 80) -> bytes:
    """Downscale to fit the bounds (aspect kept) and re-encode as WebP."""
    with Image.open(io.BytesIO(data)) as img:
        width, height = img.size
        if width > height:
            if width > max_width:
                height = round(height * max_width / width)
                width = max_width
        elif height > max_height:
            width = round(width * max_height / height)
            height = max_height

        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")
        if (width, height) != img.size:
            img = img.resize((max(width, 1), max(height, 1)), Image.LANCZOS)

        out = io.BytesIO()
        img.save(out, format="WEBP", quality=quality)
        return out.getvalue()


def section_image_path(section_id) -> str:
    return f"sections/{section_id}.webp"


def folder_image_path(folder_id) -> str:
    return f"folders/{folder_id}.webp"


def card_image_path(card_id) -> str:
    return f"cards/{card_id}.webp"


def path_from_public_url(url: str, bucket: str = IMAGES_BUCKET):
    """Recover the object path from a public URL of the bucket, or None."""
    if not url:
        return None
    path = urlparse(url).path
    marker = f"/{bucket}/"
    if marker not in path:
        return None
    return path.split(marker, 1)[1] or None


def upload_image(client, data: bytes, path: str) -> str:
    """Process and upload an image; returns its public URL."""
    processed = process_image(data)
    bucket = client.storage.from_(IMAGES_BUCKET)
    bucket.upload(
        path,
        processed,
        file_options={
            "content-type": "image/webp",
            "cache-control": "3600",
            "upsert": "true",
        },
    )
    public_url = bucket.get_public_url(path)
    print(f"[Storage] Uploaded {path} ({len(processed)} bytes)")
    return public_url


def delete_image(client, path: str) -> None:
    client.storage.from_(IMAGES_BUCKET).remove([path])
    print(f"[Storage] Removed {path}")
