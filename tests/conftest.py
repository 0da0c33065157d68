# tests/conftest.py
import io
import json
import os
import tempfile

import httpx
import pytest
import requests
from PIL import Image

# Must be in place before swapstudio.config is imported anywhere.
_DATA_DIR = tempfile.mkdtemp(prefix="swapstudio-test-")
os.environ["DATA_DIR"] = _DATA_DIR
os.environ["BASE_URL"] = "http://testserver"
os.environ["LIGHTX_API_KEY"] = "test-key-0123456789abcd"
os.environ["LIGHTX_BASE_URL"] = "https://api.test/external/api"
os.environ["FACESWAP_POLL_INTERVAL_SECONDS"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

API_BASE = "https://api.test/external/api"
API_KEY = "k" * 20
RESULT_URL = "https://cdn.test/results/swapped.jpg"

JPEG_MAGIC = b"\xff\xd8\xff\xe0"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def jpeg_bytes(size: int) -> bytes:
    return JPEG_MAGIC + b"\x00" * (size - len(JPEG_MAGIC))


def png_bytes(size: int) -> bytes:
    return PNG_MAGIC + b"\x00" * (size - len(PNG_MAGIC))


def real_image_bytes(fmt: str = "JPEG", size=(128, 128)) -> bytes:
    """A decodable noise image, large enough to clear the 1KB floor after re-encoding."""
    img = Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


class FakeLightX:
    """
    Stand-in for the LightX API plus the signed-upload bucket.

    `statuses` are served by /v1/order-status in order; the last one repeats.
    Each entry is either a body dict or an httpx.Response.
    """

    def __init__(self, statuses=None):
        self.requests = []
        self.statuses = list(statuses or [{"status": "active", "output": RESULT_URL}])
        self.upload_url_response = None
        self.swap_response = None
        self.put_status = 200
        self._uploads = 0

    @staticmethod
    def _fresh(resp: httpx.Response) -> httpx.Response:
        # a Response can only be sent once
        return httpx.Response(resp.status_code, headers=resp.headers, content=resp.content)

    def paths(self):
        return [r.url.path for r in self.requests]

    def count(self, suffix: str) -> int:
        return sum(1 for p in self.paths() if p.endswith(suffix))

    def puts(self):
        return [r for r in self.requests if r.method == "PUT"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "PUT":
            return httpx.Response(self.put_status)

        if path.endswith("/v2/uploadImageUrl"):
            if self.upload_url_response is not None:
                return self._fresh(self.upload_url_response)
            body = json.loads(request.content)
            self._uploads += 1
            n = self._uploads
            return httpx.Response(200, json={
                "statusCode": 2000,
                "body": {
                    "uploadImage": f"https://bucket.test/put/{n}?sig=abc",
                    "imageUrl": f"https://bucket.test/images/{n}",
                    "size": body["size"],
                },
            })

        if path.endswith("/v1/face-swap"):
            if self.swap_response is not None:
                return self._fresh(self.swap_response)
            return httpx.Response(200, json={"statusCode": 2000, "body": {"orderId": "order-1"}})

        if path.endswith("/v1/order-status"):
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            if isinstance(status, httpx.Response):
                return self._fresh(status)
            return httpx.Response(200, json={"statusCode": 2000, "body": status})

        return httpx.Response(404, text="not found")


@pytest.fixture()
def fake_api():
    return FakeLightX()


@pytest.fixture()
def make_client():
    from swapstudio.client import FaceSwapClient

    def _make(handler, **kwargs):
        kwargs.setdefault("api_key", API_KEY)
        kwargs.setdefault("base_url", API_BASE)
        kwargs.setdefault("poll_interval", 0.0)
        return FaceSwapClient(transport=httpx.MockTransport(handler), **kwargs)

    return _make


@pytest.fixture()
def image_files(tmp_path):
    source = tmp_path / "source.jpg"
    target = tmp_path / "target.png"
    source.write_bytes(jpeg_bytes(50 * 1024))
    target.write_bytes(png_bytes(80 * 1024))
    return str(source), str(target)


class DummyResp:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")
