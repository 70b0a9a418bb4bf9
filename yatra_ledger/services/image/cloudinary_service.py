"""
Receipt Storage using Cloudinary

DESIGN DECISION: We use Cloudinary because:
1. Reliable cloud infrastructure with a CDN URL per image
2. Simple upload/destroy API
3. Free tier sufficient for personal use

This service handles:
1. Receipt upload to Cloudinary
2. Returning the delivery URL stored on the expense
3. Releasing the image when its expense is deleted
"""

import asyncio
import hashlib
import re
from typing import Optional
from uuid import uuid4

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
from tenacity import retry, stop_after_attempt, wait_exponential

from yatra_ledger.config import get_settings
from yatra_ledger.services.image.interface import (
    ReceiptStorage,
    ReceiptStorageError,
    ReceiptTooLargeError,
)


_VERSION_SEGMENT = re.compile(r"^v\d+$")


def public_id_from_url(url: str) -> Optional[str]:
    """
    Recover the Cloudinary public ID from a delivery URL.

    Format: .../image/upload/[transformations/][v123/]folder/name.ext
    """
    marker = "/upload/"
    if marker not in url:
        return None
    segments = url.split(marker, 1)[1].split("?", 1)[0].split("/")

    # Drop transformation segments up to and including the version
    for index, segment in enumerate(segments):
        if _VERSION_SEGMENT.match(segment):
            segments = segments[index + 1:]
            break

    if not segments or not segments[-1]:
        return None
    segments[-1] = segments[-1].rsplit(".", 1)[0]
    return "/".join(segments)


class CloudinaryReceiptStorage(ReceiptStorage):
    """
    Receipt storage on Cloudinary.

    Flow:
    1. Receive raw image bytes
    2. Upload them under the configured folder
    3. Return the secure delivery URL
    """

    def __init__(self):
        self._settings = get_settings().cloudinary
        self._app_settings = get_settings().app
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def _generate_public_id(self, filename: str) -> str:
        """
        Generate a unique public ID for Cloudinary.

        Format: {uuid}_{filename_hash}
        """
        filename_hash = hashlib.md5(filename.encode()).hexdigest()[:8]
        return f"{uuid4().hex}_{filename_hash}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _upload(self, data: bytes, filename: str) -> dict:
        return cloudinary.uploader.upload(
            data,
            public_id=self._generate_public_id(filename),
            folder=self._settings.folder,
            resource_type="image",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _destroy(self, public_id: str) -> dict:
        return cloudinary.uploader.destroy(public_id, invalidate=True)

    async def upload_receipt(self, data: bytes, filename: str) -> str:
        """
        Upload a receipt image.

        Raises:
            ReceiptTooLargeError: If the image exceeds the configured size
            ReceiptStorageError: If upload fails
        """
        max_bytes = self._app_settings.max_receipt_size_bytes
        if len(data) > max_bytes:
            raise ReceiptTooLargeError(
                f"Receipt is {len(data)} bytes; the limit is {max_bytes}"
            )

        self._configure()
        try:
            result = await asyncio.to_thread(self._upload, data, filename)
        except cloudinary.exceptions.Error as e:
            raise ReceiptStorageError(f"Cloudinary error: {e}")
        except Exception as e:
            raise ReceiptStorageError(f"Failed to upload receipt: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise ReceiptStorageError("No URL returned from Cloudinary")
        return url

    async def delete_receipt(self, url: str) -> None:
        """Destroy the image behind a delivery URL."""
        public_id = public_id_from_url(url)
        if public_id is None:
            # Not one of ours; nothing to release
            return

        self._configure()
        try:
            result = await asyncio.to_thread(self._destroy, public_id)
        except cloudinary.exceptions.Error as e:
            raise ReceiptStorageError(f"Cloudinary error: {e}")
        except Exception as e:
            raise ReceiptStorageError(f"Failed to delete receipt: {e}")

        if result.get("result") not in ("ok", "not found"):
            raise ReceiptStorageError(f"Cloudinary refused delete: {result}")
