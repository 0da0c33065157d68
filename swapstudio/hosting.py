"""
Local image hosting.

Images are re-encoded to JPEG under DATA_DIR/images/<folder>/ and served by
the app's /static mount, so every hosted image has a stable public URL.
"""

import io
import logging
import re
from pathlib import Path
from typing import Optional

import requests
from PIL import Image, UnidentifiedImageError

from swapstudio.errors import ImageHostError
from swapstudio.schemas import HostedImage

log = logging.getLogger("swapstudio.hosting")

_SAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_\-]")
JPEG_QUALITY = 88


def _clean(segment: str) -> str:
    return _SAFE_SEGMENT.sub("_", segment.strip("/")) or "image"


class ImageHost:
    def __init__(self, root: str, public_base_url: str, timeout: float = 30.0):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.timeout = timeout
        self.root.mkdir(parents=True, exist_ok=True)

    def local_path(self, public_id: str) -> Path:
        parts = [_clean(p) for p in public_id.split("/") if p]
        return self.root.joinpath(*parts).with_suffix(".jpg")

    def _read_source(self, source: str) -> bytes:
        if source.lower().startswith(("http://", "https://")):
            log.info("Fetching image for hosting url=%s", source)
            resp = requests.get(source, timeout=self.timeout)
            resp.raise_for_status()
            return resp.content
        return Path(source).read_bytes()

    def upload(self, source: str, folder: str = "faceswap", public_id: Optional[str] = None) -> HostedImage:
        """Host an image given a local path or URL."""
        name = _clean(public_id or Path(source).stem)
        folder_parts = "/".join(_clean(p) for p in folder.split("/") if p)
        full_id = f"{folder_parts}/{name}" if folder_parts else name

        log.info("Hosting image source=%s public_id=%s", source, full_id)
        try:
            raw = self._read_source(source)
            with Image.open(io.BytesIO(raw)) as img:
                rgb = img.convert("RGB")
            out = self.local_path(full_id)
            out.parent.mkdir(parents=True, exist_ok=True)
            rgb.save(out, format="JPEG", quality=JPEG_QUALITY)
        except (OSError, requests.RequestException, UnidentifiedImageError) as e:
            log.error("Image hosting failed source=%s: %s", source, e)
            raise ImageHostError(f"Failed to host image: {e}") from e

        hosted = HostedImage(
            url=f"{self.public_base_url}/{out.relative_to(self.root).as_posix()}",
            public_id=full_id,
            width=rgb.width,
            height=rgb.height,
            format="jpg",
            bytes=out.stat().st_size,
        )
        log.info("Hosted image url=%s bytes=%d", hosted.url, hosted.bytes)
        return hosted

    def delete(self, public_id: str) -> bool:
        path = self.local_path(public_id)
        try:
            path.unlink()
        except FileNotFoundError:
            log.warning("Hosted image not found public_id=%s", public_id)
            return False
        except OSError as e:
            raise ImageHostError(f"Failed to delete image {public_id}: {e}") from e
        log.info("Deleted hosted image public_id=%s", public_id)
        return True
