import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import httpx

from swapstudio.errors import (
    ImageFetchError,
    ImageNotFoundError,
    RequestTimeoutError,
    UnsupportedFormatError,
)

log = logging.getLogger("swapstudio.images")

MIN_IMAGE_BYTES = 1024
MAX_IMAGE_BYTES = 5 * 1024 * 1024
SUPPORTED_FORMATS = ("image/jpeg", "image/jpg", "image/png")
DEFAULT_CONTENT_TYPE = "image/jpeg"
USER_AGENT = "swapstudio/1.0"

JPEG_MAGIC = b"\xff\xd8\xff"
PNG_MAGIC = b"\x89PNG"

EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


@dataclass(frozen=True)
class RemoteUrl:
    url: str


@dataclass(frozen=True)
class LocalPath:
    path: str


ImageSource = Union[RemoteUrl, LocalPath]


@dataclass(frozen=True)
class ImagePayload:
    data: bytes = field(repr=False)
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def as_source(value: str, is_url: bool) -> ImageSource:
    """Tag a plain string the way the (source, is_url) call shape describes it."""
    return RemoteUrl(value) if is_url else LocalPath(value)


def guess_source(value: str) -> ImageSource:
    if value.lower().startswith(("http://", "https://")):
        return RemoteUrl(value)
    return LocalPath(value)


def _media_type(header: Optional[str]) -> str:
    if not header:
        return DEFAULT_CONTENT_TYPE
    return header.split(";", 1)[0].strip().lower() or DEFAULT_CONTENT_TYPE


async def _fetch_remote(
    url: str,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ImagePayload:
    log.info("Fetching image url=%s", url)
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.get(url, headers={"User-Agent": USER_AGENT}, follow_redirects=True)
    except httpx.TimeoutException as e:
        raise RequestTimeoutError(f"Timed out fetching image from {url}") from e
    except httpx.HTTPError as e:
        raise ImageFetchError(f"Failed to fetch image from URL: {e}") from e

    if not resp.is_success:
        raise ImageFetchError(
            f"Failed to fetch image from URL: {resp.status_code} - {resp.reason_phrase}"
        )
    return ImagePayload(resp.content, _media_type(resp.headers.get("content-type")))


def _read_local(path: str) -> ImagePayload:
    p = Path(path)
    if not p.is_file():
        raise ImageNotFoundError(f"File not found: {path}")

    ext = p.suffix.lower()
    content_type = EXTENSION_TYPES.get(ext)
    if content_type is None:
        raise UnsupportedFormatError(
            f"Unsupported file extension: {ext or '(none)'}. Please use .jpg, .jpeg, or .png files."
        )

    try:
        data = p.read_bytes()
    except OSError as e:
        raise ImageFetchError(f"Could not read image file {path}: {e.strerror or e}") from e
    log.info("Read local image path=%s bytes=%d", path, len(data))
    return ImagePayload(data, content_type)


async def acquire_image(
    source: ImageSource,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ImagePayload:
    if isinstance(source, RemoteUrl):
        return await _fetch_remote(source.url, timeout, transport)
    if isinstance(source, LocalPath):
        return _read_local(source.path)
    raise TypeError(f"Unknown image source: {source!r}")


def _signature_matches(data: bytes, content_type: str, strict: bool) -> bool:
    if len(data) < 4:
        return False

    is_jpeg = data.startswith(JPEG_MAGIC)
    is_png = data.startswith(PNG_MAGIC)

    if "jpeg" in content_type or "jpg" in content_type:
        return is_jpeg
    if "png" in content_type:
        return is_png

    # Content type names neither format. Lenient mode accepts either
    # signature; whether this should reject outright is still open.
    if strict:
        return False
    return is_jpeg or is_png


def validate_image(data: bytes, content_type: str, strict_signatures: bool = False) -> ValidationResult:
    """
    Check an image buffer against the upload limits.

    Every check runs, so the result lists all problems at once.
    """
    result = ValidationResult()
    size = len(data)

    if size > MAX_IMAGE_BYTES:
        result.errors.append(
            f"Image size {size} bytes exceeds maximum allowed size of {MAX_IMAGE_BYTES} bytes (5MB)"
        )
    if size < MIN_IMAGE_BYTES:
        result.errors.append(f"Image size {size} bytes is too small. Minimum size is 1KB")

    if content_type not in SUPPORTED_FORMATS:
        result.errors.append(
            f"Unsupported image format: {content_type}. Supported formats: {', '.join(SUPPORTED_FORMATS)}"
        )

    if not _signature_matches(data, content_type or "", strict_signatures):
        result.errors.append("Invalid image file format or corrupted image data")

    return result
