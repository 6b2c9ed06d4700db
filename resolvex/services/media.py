"""Proof-image externalization backed by Google Cloud Storage.

Citizens attach the proof image inline (a ``data:image/...;base64,``
URI from the mobile app, or bare base64).  Before a complaint can be
stored the image is decoded, written to a public bucket, and replaced
by its public URL.  The same store removes the object again when the
owner deletes the complaint.

The GCS client is synchronous, so every call runs in a worker thread
and is bounded by ``timeout_seconds``.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any, Final, Protocol, runtime_checkable
from urllib.parse import quote, unquote
from uuid import uuid4

import structlog

from resolvex.services.errors import InvalidImageError, UploadError

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Payload decoding
# ---------------------------------------------------------------------------

_DATA_URI_RE: Final = re.compile(
    r"^data:(?P<mime>image/[\w.+-]+);base64,(?P<data>.+)$",
    re.DOTALL | re.IGNORECASE,
)

_EXTENSIONS: Final[dict[str, str]] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
}

_MAX_IMAGE_BYTES: Final[int] = 10 * 1024 * 1024  # matches the API body limit


@dataclass(slots=True, frozen=True)
class ImagePayload:
    """A decoded proof image."""

    content: bytes
    content_type: str
    extension: str


def _sniff_content_type(content: bytes) -> str | None:
    if content.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if content.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if content[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "image/webp"
    return None


def decode_image_payload(payload: str) -> ImagePayload:
    """Decode an embedded image payload.

    Raises
    ------
    InvalidImageError
        If the payload is not valid base64 or not a supported image.
    """
    payload = payload.strip()
    match = _DATA_URI_RE.match(payload)
    declared_type = match.group("mime").lower() if match else None
    data = match.group("data") if match else payload

    try:
        content = base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidImageError("Proof image is not valid base64 data") from None

    if not content:
        raise InvalidImageError("Proof image is empty")
    if len(content) > _MAX_IMAGE_BYTES:
        raise InvalidImageError("Proof image is too large")

    content_type = declared_type or _sniff_content_type(content)
    if content_type not in _EXTENSIONS:
        raise InvalidImageError("Proof image format is not supported")

    if content_type == "image/jpg":
        content_type = "image/jpeg"
    return ImagePayload(
        content=content,
        content_type=content_type,
        extension=_EXTENSIONS[content_type],
    )


# ---------------------------------------------------------------------------
# Media externalizer protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class MediaExternalizer(Protocol):
    """Turns an embedded image into a durable public URL."""

    async def upload(self, payload: str) -> str: ...

    async def delete(self, url: str) -> None: ...


# ---------------------------------------------------------------------------
# Google Cloud Storage implementation
# ---------------------------------------------------------------------------


class GCSMediaStore:
    """Stores proof images as public objects in a GCS bucket.

    Parameters
    ----------
    bucket_name:
        Target bucket.  Objects must be publicly readable (uniform
        bucket-level access with ``allUsers:objectViewer``).
    client:
        A ``google.cloud.storage.Client``.  Created from application
        default credentials when omitted.
    prefix:
        Object name prefix for every uploaded image.
    timeout_seconds:
        Upper bound for each upload / delete call.
    """

    PUBLIC_HOST = "https://storage.googleapis.com"

    __slots__ = ("_bucket", "_bucket_name", "_client", "_prefix", "_timeout")

    def __init__(
        self,
        bucket_name: str,
        *,
        client: Any | None = None,
        project: str | None = None,
        prefix: str = "complaints/",
        timeout_seconds: float = 20.0,
    ) -> None:
        if client is None:
            from google.cloud import storage

            client = storage.Client(project=project or None)
        self._client = client
        self._bucket_name = bucket_name
        self._bucket = client.bucket(bucket_name)
        self._prefix = prefix
        self._timeout = timeout_seconds

    # ------------------------------------------------------------------
    # URL helpers
    # ------------------------------------------------------------------

    def public_url_for(self, object_name: str) -> str:
        return f"{self.PUBLIC_HOST}/{self._bucket_name}/{quote(object_name)}"

    def object_name_from_url(self, url: str) -> str | None:
        """Return the object name for a URL we issued, else ``None``."""
        base = f"{self.PUBLIC_HOST}/{self._bucket_name}/"
        if not url.startswith(base):
            return None
        name = unquote(url[len(base):].split("?", 1)[0])
        return name or None

    # ------------------------------------------------------------------
    # MediaExternalizer interface
    # ------------------------------------------------------------------

    async def upload(self, payload: str) -> str:
        """Upload an embedded image and return its public URL.

        Raises
        ------
        UploadError
            On an undecodable payload, a GCS failure, or a timeout.
        """
        image = decode_image_payload(payload)
        object_name = f"{self._prefix}{uuid4().hex}.{image.extension}"
        blob = self._bucket.blob(object_name)

        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    blob.upload_from_string,
                    image.content,
                    content_type=image.content_type,
                ),
                timeout=self._timeout,
            )
        except TimeoutError:
            logger.warning(
                "media.upload_timeout",
                object_name=object_name,
                timeout_s=self._timeout,
            )
            raise UploadError() from None
        except Exception:
            logger.warning("media.upload_failed", object_name=object_name, exc_info=True)
            raise UploadError() from None

        url = self.public_url_for(object_name)
        logger.info(
            "media.uploaded",
            object_name=object_name,
            content_type=image.content_type,
            size_bytes=len(image.content),
        )
        return url

    async def delete(self, url: str) -> None:
        """Delete a previously uploaded image.

        URLs that do not point into our bucket are ignored.  Any GCS
        error propagates; callers treat cleanup as best-effort.
        """
        object_name = self.object_name_from_url(url)
        if object_name is None:
            logger.info("media.delete_skipped_foreign_url", url=url[:200])
            return

        blob = self._bucket.blob(object_name)
        await asyncio.wait_for(asyncio.to_thread(blob.delete), timeout=self._timeout)
        logger.info("media.deleted", object_name=object_name)
