"""
Cloudinary image storage via its REST upload API.

Uploads are signed: the signature is the SHA-1 of the alphabetically sorted
``key=value`` parameters joined with ``&`` followed by the API secret.
"""
from __future__ import annotations

import dataclasses
import hashlib
import logging
import time
from typing import Any, Dict, List, Optional, Union

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

UPLOAD_BASE_URL = "https://api.cloudinary.com/v1_1"
DELIVERY_BASE_URL = "https://res.cloudinary.com"


class ImageStorageError(Exception):
    """Raised when the image store rejects a request."""


@dataclasses.dataclass
class UploadResult:
    success: bool
    url: Optional[str] = None
    public_id: Optional[str] = None
    error: Optional[str] = None


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature for *params* (empty values are skipped)."""
    to_sign = "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


def as_data_url(base64_data: str) -> str:
    """Prefix raw base64 with a PNG data URL header unless it already has one."""
    if base64_data.startswith("data:"):
        return base64_data
    return f"data:image/png;base64,{base64_data}"


class CloudinaryStorage:
    def __init__(
        self,
        cloud_name: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cloud_name = cloud_name if cloud_name is not None else settings.CLOUDINARY_CLOUD_NAME
        self.api_key = api_key if api_key is not None else settings.CLOUDINARY_API_KEY
        self.api_secret = api_secret if api_secret is not None else settings.CLOUDINARY_API_SECRET
        self.timeout = httpx.Timeout(60.0, connect=10.0)
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def _signed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = {k: v for k, v in params.items() if v not in (None, "")}
        params["timestamp"] = int(time.time())
        signature = sign_params(params, self.api_secret)
        return {**params, "api_key": self.api_key, "signature": signature}

    async def _post(self, action: str, data: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{UPLOAD_BASE_URL}/{self.cloud_name}/image/{action}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(url, data=data)
        if resp.status_code != 200:
            try:
                message = resp.json().get("error", {}).get("message") or resp.text
            except ValueError:
                message = resp.text
            raise ImageStorageError(f"Cloudinary {action} failed ({resp.status_code}): {message}")
        return resp.json()

    async def upload_image(
        self,
        base64_data: str,
        folder: Optional[str] = None,
        public_id: Optional[str] = None,
    ) -> UploadResult:
        """Upload a base64 image. Never raises; failures come back in the result."""
        if not self.is_configured:
            return UploadResult(success=False, error="Cloudinary is not configured")

        params = self._signed({
            "folder": folder or settings.CLOUDINARY_FOLDER,
            "public_id": public_id,
        })
        params["file"] = as_data_url(base64_data)

        try:
            body = await self._post("upload", params)
        except (httpx.HTTPError, ImageStorageError) as exc:
            logger.error("Cloudinary upload error: %s", exc)
            return UploadResult(success=False, error=str(exc) or "Failed to upload image to Cloudinary")

        return UploadResult(
            success=True,
            url=body.get("secure_url"),
            public_id=body.get("public_id"),
        )

    async def delete_image(self, public_id: str) -> UploadResult:
        if not self.is_configured:
            return UploadResult(success=False, error="Cloudinary is not configured")

        try:
            await self._post("destroy", self._signed({"public_id": public_id}))
        except (httpx.HTTPError, ImageStorageError) as exc:
            logger.error("Cloudinary delete error: %s", exc)
            return UploadResult(success=False, error=str(exc) or "Failed to delete image from Cloudinary")

        return UploadResult(success=True, public_id=public_id)

    def transformed_url(
        self,
        public_id: str,
        width: Optional[int] = None,
        height: Optional[int] = None,
        crop: Optional[str] = None,
        quality: Optional[Union[str, int]] = None,
        format: Optional[str] = None,
    ) -> str:
        """Secure delivery URL with the given transformation applied."""
        parts: List[str] = []
        if crop:
            parts.append(f"c_{crop}")
        if height:
            parts.append(f"h_{height}")
        if quality is not None:
            parts.append(f"q_{quality}")
        if width:
            parts.append(f"w_{width}")

        path = f"{DELIVERY_BASE_URL}/{self.cloud_name}/image/upload"
        if parts:
            path += "/" + ",".join(parts)
        path += f"/{public_id}"
        if format:
            path += f".{format}"
        return path


def get_image_storage() -> CloudinaryStorage:
    return CloudinaryStorage()
