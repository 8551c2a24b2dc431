"""Resolve file references to embeddable image bytes for the workbook export."""
from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from PIL import Image, UnidentifiedImageError

from compound_backend.storage.object_store import ObjectStorage, StorageError

logger = logging.getLogger(__name__)

EMBED_FORMATS = {"PNG": "png", "JPEG": "jpeg", "GIF": "gif"}

# Known document types are linked without being downloaded.
_DOCUMENT_SUFFIXES = {".pdf", ".txt", ".doc", ".docx", ".csv", ".xlsx", ".zip"}

_DATA_URI = re.compile(r"^data:(?P<mime>[^;,]*)(;[^,]*)?;base64,(?P<payload>.+)$", re.IGNORECASE | re.DOTALL)


class ImageResolutionError(Exception):
    """Raised when a reference cannot be turned into an embeddable image."""


@dataclass
class ResolvedImage:
    data: bytes
    format: str
    width: int
    height: int


def decode_data_uri(uri: str) -> bytes:
    match = _DATA_URI.match(uri or "")
    if not match:
        raise ImageResolutionError("Not a base64 data URI")
    try:
        return base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageResolutionError("Unable to decode base64 image data") from exc


def file_name(reference: str) -> str:
    if reference.startswith("data:"):
        return "inline"
    path = urlparse(reference).path if reference.startswith(("http://", "https://")) else reference
    return PurePosixPath(path).name or reference


def looks_like_document(reference: str) -> bool:
    if reference.startswith("data:"):
        return not reference.lower().startswith("data:image/")
    return PurePosixPath(urlparse(reference).path).suffix.lower() in _DOCUMENT_SUFFIXES


def normalise_image(data: bytes) -> ResolvedImage:
    """Sniff ``data`` with Pillow; anything but PNG/JPEG/GIF is re-encoded as PNG."""

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            original_format = (img.format or "").upper()
            width, height = img.size
            if original_format in EMBED_FORMATS:
                return ResolvedImage(data, EMBED_FORMATS[original_format], width, height)

            converted = img.convert("RGBA" if "A" in img.getbands() else "RGB")
            buffer = io.BytesIO()
            converted.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageResolutionError(f"Not a supported image: {exc}") from exc

    logger.debug("export.image_converted from=%s to=PNG", original_format or "unknown")
    return ResolvedImage(buffer.getvalue(), "png", width, height)


class ImageResolver:
    """Fetch references from data URIs, the upload bucket or remote URLs."""

    def __init__(self, storage: ObjectStorage, timeout: float = 30.0, max_size_mb: float = 10.0) -> None:
        self.storage = storage
        self.timeout = timeout
        self.max_bytes = int(max_size_mb * 1024 * 1024)

    def link(self, reference: str) -> str:
        return self.storage.public_url(reference)

    def _fetch_url(self, url: str) -> bytes:
        request = Request(url, headers={"Accept": "image/*,*/*;q=0.8"})
        try:
            with urlopen(request, timeout=self.timeout) as response:
                content_length = response.headers.get("Content-Length")
                if content_length and int(content_length) > self.max_bytes:
                    raise ImageResolutionError(f"Image at {url} is too large")
                return response.read(self.max_bytes + 1)
        except HTTPError as exc:
            raise ImageResolutionError(f"HTTP error fetching {url}: {exc.code} {exc.reason}") from exc
        except (URLError, OSError, ValueError) as exc:
            raise ImageResolutionError(f"Network error fetching {url}: {exc}") from exc

    def load_bytes(self, reference: str) -> bytes:
        if reference.startswith("data:"):
            return decode_data_uri(reference)

        key = self.storage.extract_key(reference)
        if key is not None:
            try:
                return self.storage.get_bytes(key)
            except StorageError as exc:
                raise ImageResolutionError(f"Storage error fetching {key}: {exc}") from exc

        if reference.startswith(("http://", "https://")):
            return self._fetch_url(reference)

        raise ImageResolutionError("Unrecognised file reference")

    def resolve(self, reference: str) -> Optional[ResolvedImage]:
        """Return the image or ``None`` so the caller can fall back to a link."""

        if not reference or looks_like_document(reference):
            return None
        try:
            data = self.load_bytes(reference)
            if not data:
                raise ImageResolutionError("Empty image data")
            if len(data) > self.max_bytes:
                raise ImageResolutionError("Image is too large")
            return normalise_image(data)
        except ImageResolutionError as exc:
            logger.info("export.image_unresolved reference=%s reason=%s", reference[:120], exc)
            return None


__all__ = [
    "ImageResolutionError",
    "ImageResolver",
    "ResolvedImage",
    "decode_data_uri",
    "file_name",
    "looks_like_document",
    "normalise_image",
]
