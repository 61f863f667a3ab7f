"""Product image storage.

``CloudImageStorage`` uploads to the hosted storage bucket,
``LocalImageStorage`` writes under ``assets/product_images`` for local runs.
Callers treat deletion as best effort.
"""
import logging
import re
import uuid
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import quote

import requests

from core.errors import BackendError

logger = logging.getLogger(__name__)

STORAGE_API = "https://firebasestorage.googleapis.com/v0/b"
REQUEST_TIMEOUT = 30


def safe_filename(filename: str) -> str:
    name = Path(filename or "image").name
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name or "image"


def image_object_path(uid: str, filename: str) -> str:
    """Generated storage path for a product image."""
    return f"products/{uid}/{uuid.uuid4().hex}_{safe_filename(filename)}"


class ImageStorage:
    def upload(self, uid: str, filename: str, data: bytes, content_type: str) -> Tuple[str, str]:
        """Store an image and return ``(public_url, object_path)``."""
        raise NotImplementedError

    def delete(self, object_path: str) -> None:
        raise NotImplementedError


class CloudImageStorage(ImageStorage):
    def __init__(self, bucket: str, id_token: Optional[str] = None, session=None):
        self.bucket = bucket
        self.id_token = id_token
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        return {"Authorization": f"Firebase {self.id_token}"} if self.id_token else {}

    def _object_url(self, object_path: str) -> str:
        return f"{STORAGE_API}/{self.bucket}/o/{quote(object_path, safe='')}"

    def upload(self, uid, filename, data, content_type):
        object_path = image_object_path(uid, filename)
        headers = self._headers()
        headers["Content-Type"] = content_type or "application/octet-stream"
        try:
            response = self.session.post(
                f"{STORAGE_API}/{self.bucket}/o",
                params={"name": object_path, "uploadType": "media"},
                data=data,
                headers=headers,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.exception("Image upload failed for %s", object_path)
            raise BackendError(f"Image upload failed: {e}") from e
        if response.status_code >= 400:
            logger.error("Image upload %s -> %s: %s", object_path, response.status_code, response.text)
            raise BackendError(f"Image upload failed ({response.status_code})")
        token = (response.json() or {}).get("downloadTokens", "")
        url = f"{self._object_url(object_path)}?alt=media"
        if token:
            url += f"&token={token.split(',')[0]}"
        return url, object_path

    def delete(self, object_path):
        try:
            response = self.session.delete(
                self._object_url(object_path), headers=self._headers(), timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as e:
            raise BackendError(f"Image delete failed: {e}") from e
        if response.status_code >= 400 and response.status_code != 404:
            raise BackendError(f"Image delete failed ({response.status_code})")


class LocalImageStorage(ImageStorage):
    def __init__(self, root: str = "assets/product_images"):
        self.root = Path(root)

    def upload(self, uid, filename, data, content_type):
        object_path = image_object_path(uid, filename)
        target = self.root / object_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return str(target), object_path

    def delete(self, object_path):
        target = self.root / object_path
        if target.exists():
            target.unlink()
