"""Image uploads to Supabase Storage."""

import base64
import binascii
import time

from unpair.services.supabase_client import SupabaseClient
from unpair.utils.config import AppConfig
from unpair.utils.errors import FormValidationError, SupabaseError
from unpair.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)

LISTING_IMAGES_FOLDER = "sneakers"
PROFILE_IMAGES_FOLDER = "profile"


def decode_image(value: str) -> bytes:
    """Decode a base64 image, accepting an optional data: URI prefix."""
    if not value or not isinstance(value, str):
        raise FormValidationError("Please add an image")

    if value.startswith("data:"):
        _, _, value = value.partition(",")

    try:
        data = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise FormValidationError("Image must be base64 encoded", title="Bad image")

    if not data:
        raise FormValidationError("Please add an image")
    return data


def build_image_path(folder: str, owner_id: str, index: int = 0) -> str:
    """Path like sneakers/<uid>/<millis>.jpg; later images in a batch get a -N suffix."""
    stamp = int(time.time() * 1000)
    suffix = f"-{index}" if index else ""
    return f"{folder}/{owner_id}/{stamp}{suffix}.jpg"


async def upload_image(
    folder: str,
    owner_id: str,
    data: bytes,
    content_type: str = "image/jpeg",
    index: int = 0,
) -> str:
    """Upload image bytes and return the public URL."""
    path = build_image_path(folder, owner_id, index)

    async with SupabaseClient() as client:
        bucket = client.storage.from_(AppConfig.STORAGE_BUCKET)
        try:
            with log_timing(
                "upload_image",
                logger=logger,
                folder=folder,
                owner_id=mask_user_id(owner_id),
                size_bytes=len(data)
            ):
                bucket.upload(path, data, {"content-type": content_type})
            url = bucket.get_public_url(path)
        except Exception as e:
            raise SupabaseError(f"Failed to upload image: {e}") from e

    logger.info("Image uploaded", path=path, owner_id=mask_user_id(owner_id))
    return url


def path_from_public_url(url: str) -> str:
    """Object path inside the bucket for a URL returned by get_public_url."""
    marker = f"/object/public/{AppConfig.STORAGE_BUCKET}/"
    _, found, path = url.partition(marker)
    if not found:
        raise ValueError(f"Not a public URL in bucket {AppConfig.STORAGE_BUCKET}: {url}")
    return path.split("?", 1)[0]


async def delete_images(urls: list[str]) -> None:
    """Remove uploaded images, e.g. when the record that points at them was never written."""
    if not urls:
        return
    paths = [path_from_public_url(url) for url in urls]
    async with SupabaseClient() as client:
        try:
            client.storage.from_(AppConfig.STORAGE_BUCKET).remove(paths)
        except Exception as e:
            raise SupabaseError(f"Failed to delete images: {e}") from e
    logger.info("Images deleted", count=len(paths))
