# src/tasklink/tasks/uploader.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

from ..core.ports import ImageGateway

logger = logging.getLogger(__name__)

_DURABLE_SCHEMES = {"http", "https"}


def is_durable(ref: str | None) -> bool:
    """True for a remotely resolvable URL (http/https with a host); local handles are not."""
    if not ref:
        return False
    try:
        parsed = urlparse(ref.strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in _DURABLE_SCHEMES and bool(parsed.netloc)


def local_path(ref: str) -> Path:
    """Resolve a local image reference (plain path or file:// URI) to a filesystem path."""
    ref = ref.strip()
    parsed = urlparse(ref)
    if parsed.scheme.lower() == "file":
        return Path(unquote(parsed.path))
    return Path(ref).expanduser()


@dataclass(slots=True, frozen=True)
class UploadResult:
    success: bool
    url: str | None = None
    error: str | None = None


class AssetUploader:
    """
    Promote local image references to durable URLs.

    Contract:
    - upload() never raises; every failure becomes UploadResult(success=False, error=...)
    - no idempotence: uploading the same file twice may yield two URLs, so callers
      should upload a given reference once per operation.
    """

    def __init__(self, gateway: ImageGateway) -> None:
        self._gateway = gateway

    async def upload(self, local_ref: str) -> UploadResult:
        if not local_ref or not local_ref.strip():
            return UploadResult(success=False, error="No image to upload")

        try:
            resp = await self._gateway.upload_image(local_ref)
        except Exception as e:
            logger.exception("Image upload crashed ref=%s", local_ref)
            return UploadResult(success=False, error=str(e) or "Error occurred")

        if resp.ok and resp.data:
            url = str(resp.data)
            logger.info("Image uploaded ref=%s url=%s", local_ref, url)
            return UploadResult(success=True, url=url)

        message = resp.error.message if resp.error is not None else "Failed to upload"
        logger.warning("Image upload failed ref=%s: %s", local_ref, message)
        return UploadResult(success=False, error=message)

    async def ensure_durable(self, ref: str) -> UploadResult:
        """Return durable refs unchanged; upload anything else."""
        if is_durable(ref):
            return UploadResult(success=True, url=ref.strip())
        return await self.upload(ref)
