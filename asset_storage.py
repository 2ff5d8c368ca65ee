"""
PlantScan - Image Asset Storage

Stores submitted photos in Supabase Storage (REST API) and hands back a URL
the frontend can display. When storage is unreachable or not configured the
photo is embedded as a `data:` URI instead, so a detection never fails just
because of storage.
"""

import base64
import logging
import mimetypes
import time
import uuid
from dataclasses import dataclass
from typing import Optional

import httpx

from errors import StorageUploadError

logger = logging.getLogger("plantscan-storage")

DEFAULT_MIME_TYPE = "image/jpeg"


@dataclass(frozen=True)
class RawImage:
    data: bytes
    content_type: Optional[str] = None
    filename: Optional[str] = None

    @property
    def mime_type(self):
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.filename or "")
        return guessed or DEFAULT_MIME_TYPE

    @property
    def extension(self):
        if self.filename and "." in self.filename:
            return self.filename.rsplit(".", 1)[-1].lower()
        guessed = mimetypes.guess_extension(self.mime_type) or ".jpg"
        return guessed.lstrip(".")


class SupabaseStorage:
    """Minimal client for one Supabase Storage bucket."""

    def __init__(self, base_url, api_key, bucket, client: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self.client = client

    async def upload(self, path, data, content_type):
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": content_type,
            "cache-control": "3600",
            "x-upsert": "false",
        }
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        try:
            response = await self.client.post(url, content=data, headers=headers)
        except httpx.HTTPError as e:
            raise StorageUploadError(f"Storage unreachable: {e}") from e
        if response.status_code >= 400:
            raise StorageUploadError(f"Storage upload failed ({response.status_code}): {response.text[:200]}")

    def get_public_url(self, path):
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"


# ----------------- Paths & Inline Fallback -----------------
def build_object_path(image: RawImage, owner_id=None):
    """`{owner}/{random}.{ext}` for owners, `public/{ms}-{random}.{ext}` for anonymous uploads."""
    if owner_id:
        return f"{owner_id}/{uuid.uuid4().hex}.{image.extension}"
    return f"public/{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{image.extension}"


def to_data_uri(image: RawImage):
    encoded = base64.b64encode(image.data).decode("utf-8")
    return f"data:{image.mime_type};base64,{encoded}"


async def persist_image(image: RawImage, storage: Optional[SupabaseStorage], owner_id=None) -> str:
    """Upload `image` and return its public URL, or an inline data URI on any upload error."""
    if storage is None:
        logger.info("Object storage is not configured, embedding image inline")
        return to_data_uri(image)

    path = build_object_path(image, owner_id)
    try:
        await storage.upload(path, image.data, image.mime_type)
    except Exception as e:
        # Storage adapters may raise anything; the inline copy always works.
        logger.warning(f"Storage upload failed, using base64 fallback: {e}")
        return to_data_uri(image)

    logger.info(f"Uploaded image to {path}")
    return storage.get_public_url(path)
