"""
Media storage with provider abstraction.

Supports Cloudinary (signed REST API over httpx) and the local filesystem.
Provider is selected via configuration.

Deleting a superseded asset is best-effort: ``MediaService.discard`` never
raises, it returns a ``CleanupOutcome`` and logs failures.
"""

from __future__ import annotations

import asyncio
import enum
import hashlib
import mimetypes
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from vidtube.config import get_settings
from vidtube.exceptions import InternalError, InvalidArgumentError

if TYPE_CHECKING:
    from fastapi import UploadFile

logger = structlog.get_logger()

ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/jpg", "image/webp", "image/gif"})


@dataclass(frozen=True)
class MediaAsset:
    """A stored asset: public URL plus the provider's handle for deletion."""

    url: str
    public_id: str


class CleanupOutcome(str, enum.Enum):
    """Result of discarding a superseded asset."""

    SKIPPED = "skipped"
    DELETED = "deleted"
    FAILED = "failed"


class BaseMediaProvider(ABC):
    """Abstract base class for media storage providers."""

    name: str = "base"

    @abstractmethod
    async def upload(self, data: bytes, filename: str, content_type: str) -> MediaAsset:
        """Store bytes and return the asset handle."""
        ...

    @abstractmethod
    async def delete(self, public_id: str) -> None:
        """Delete an asset. Raises on failure."""
        ...


class CloudinaryProvider(BaseMediaProvider):
    """Store media on Cloudinary via its signed upload API."""

    name = "cloudinary"

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, timeout: float = 30.0) -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout

    def _sign(self, params: dict[str, Any]) -> str:
        """Cloudinary signature: sha1 of sorted params joined with '&', plus the secret."""
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode()).hexdigest()  # noqa: S324

    def _signed(self, params: dict[str, Any]) -> dict[str, Any]:
        params = {**params, "timestamp": int(time.time())}
        return {**params, "api_key": self.api_key, "signature": self._sign(params)}

    async def upload(self, data: bytes, filename: str, content_type: str) -> MediaAsset:
        """Upload via POST /auto/upload."""
        url = f"https://api.cloudinary.com/v1_1/{self.cloud_name}/auto/upload"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                url,
                data=self._signed({}),
                files={"file": (filename, data, content_type)},
            )
            response.raise_for_status()
        body = response.json()
        return MediaAsset(url=body["secure_url"], public_id=body["public_id"])

    async def delete(self, public_id: str) -> None:
        """Delete via POST /image/destroy. A missing asset counts as deleted."""
        url = f"https://api.cloudinary.com/v1_1/{self.cloud_name}/image/destroy"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, data=self._signed({"public_id": public_id}))
            response.raise_for_status()
        result = response.json().get("result")
        if result not in ("ok", "not found"):
            msg = f"Cloudinary destroy returned {result!r}"
            raise RuntimeError(msg)


class LocalMediaProvider(BaseMediaProvider):
    """Store media as files under a directory served at ``base_url``."""

    name = "local"

    def __init__(self, root: str | Path, base_url: str) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    async def upload(self, data: bytes, filename: str, content_type: str) -> MediaAsset:
        """Write the bytes to a new uniquely named file."""
        suffix = Path(filename).suffix or mimetypes.guess_extension(content_type) or ""
        public_id = f"{uuid.uuid4().hex}{suffix}"
        path = self.root / public_id

        def _write() -> None:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        return MediaAsset(url=f"{self.base_url}/{public_id}", public_id=public_id)

    async def delete(self, public_id: str) -> None:
        """Remove the file. Ids that escape the media root are rejected."""
        path = (self.root / public_id).resolve()
        if self.root.resolve() not in path.parents:
            msg = f"Refusing to delete outside media root: {public_id}"
            raise ValueError(msg)
        await asyncio.to_thread(path.unlink, missing_ok=True)


def _create_provider() -> BaseMediaProvider:
    """Create media provider based on configuration."""
    settings = get_settings()
    provider_name = settings.media_provider.lower()

    if provider_name == "cloudinary":
        return CloudinaryProvider(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
        )
    if provider_name == "local":
        return LocalMediaProvider(root=settings.media_root, base_url=settings.media_base_url)
    msg = f"Unsupported media provider: {provider_name}"
    raise ValueError(msg)


class MediaService:
    """Validates uploads, stores them, and discards superseded assets."""

    def __init__(self, provider: BaseMediaProvider | None = None) -> None:
        self.provider = provider or _create_provider()

    def validate_image(self, content_type: str | None, size: int, label: str = "Image") -> None:
        """
        Check type and size of an uploaded image.

        Raises:
            InvalidArgumentError: Unsupported type, empty, or too large.
        """
        max_bytes = get_settings().media_max_upload_bytes
        if content_type not in ALLOWED_IMAGE_TYPES:
            msg = f"{label} must be an image file (jpeg, png, jpg, webp, gif)"
            raise InvalidArgumentError(msg)
        if size == 0:
            msg = f"{label} file is required"
            raise InvalidArgumentError(msg)
        if size > max_bytes:
            msg = f"{label} file size must be less than {max_bytes // (1024 * 1024)}MB"
            raise InvalidArgumentError(msg)

    async def read_image(self, upload: UploadFile, label: str = "Image") -> bytes:
        """
        Read an uploaded image, never buffering more than the size limit.

        The declared size is checked before reading; the read itself is
        capped at one byte past the limit for clients that declare nothing.

        Raises:
            InvalidArgumentError: Unsupported type, empty, or too large.
        """
        max_bytes = get_settings().media_max_upload_bytes
        if upload.size is not None:
            self.validate_image(upload.content_type, upload.size, label)
        data = await upload.read(max_bytes + 1)
        self.validate_image(upload.content_type, len(data), label)
        return data

    async def store(self, data: bytes, filename: str, content_type: str) -> MediaAsset:
        """
        Upload through the provider.

        Raises:
            InternalError: The provider failed.
        """
        try:
            return await self.provider.upload(data, filename, content_type)
        except Exception as e:
            logger.exception("media_upload_failed", provider=self.provider.name, filename=filename)
            msg = "Failed to upload media"
            raise InternalError(msg) from e

    async def discard(self, public_id: str | None) -> CleanupOutcome:
        """Delete a superseded asset without failing the caller."""
        if not public_id:
            return CleanupOutcome.SKIPPED
        try:
            await self.provider.delete(public_id)
        except Exception:
            logger.warning(
                "media_cleanup_failed",
                provider=self.provider.name,
                public_id=public_id,
                exc_info=True,
            )
            return CleanupOutcome.FAILED
        return CleanupOutcome.DELETED


# Module-level singleton
_media_service: MediaService | None = None


def get_media_service() -> MediaService:
    """Get or create the media service singleton."""
    global _media_service  # noqa: PLW0603
    if _media_service is None:
        _media_service = MediaService()
    return _media_service


def reset_media_service() -> None:
    """Reset the media service singleton (for testing)."""
    global _media_service  # noqa: PLW0603
    _media_service = None
