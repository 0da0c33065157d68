"""
Tests for local image hosting.
"""
import pytest

from conftest import DummyResp, real_image_bytes
from swapstudio.errors import ImageHostError
from swapstudio.hosting import ImageHost


@pytest.fixture()
def host(tmp_path):
    return ImageHost(str(tmp_path / "images"), "http://testserver/static/images/")


def test_upload_local_png_is_stored_as_jpeg(host, tmp_path):
    src = tmp_path / "face.png"
    src.write_bytes(real_image_bytes("PNG", (64, 48)))

    hosted = host.upload(str(src), "faceswap/source", "source_sub_1")

    assert hosted.public_id == "faceswap/source/source_sub_1"
    assert hosted.url == "http://testserver/static/images/faceswap/source/source_sub_1.jpg"
    assert (hosted.width, hosted.height, hosted.format) == (64, 48, "jpg")
    path = host.local_path(hosted.public_id)
    assert path.exists()
    assert path.read_bytes()[:3] == b"\xff\xd8\xff"
    assert hosted.bytes == path.stat().st_size


def test_upload_from_url(host, monkeypatch):
    calls = []

    def fake_get(url, timeout=None):
        calls.append(url)
        return DummyResp(200, real_image_bytes())

    monkeypatch.setattr("swapstudio.hosting.requests.get", fake_get)
    hosted = host.upload("https://cdn.test/results/out.jpg", "faceswap/results", "result_1")

    assert calls == ["https://cdn.test/results/out.jpg"]
    assert hosted.width == 128


def test_upload_from_failing_url(host, monkeypatch):
    monkeypatch.setattr("swapstudio.hosting.requests.get", lambda url, timeout=None: DummyResp(404))
    with pytest.raises(ImageHostError):
        host.upload("https://cdn.test/missing.jpg")


def test_upload_rejects_non_images(host, tmp_path):
    src = tmp_path / "notes.jpg"
    src.write_bytes(b"definitely not an image")
    with pytest.raises(ImageHostError):
        host.upload(str(src))


def test_public_id_cannot_escape_root(host):
    path = host.local_path("../../etc/passwd")
    assert host.root in path.parents


def test_delete(host, tmp_path):
    src = tmp_path / "face.jpg"
    src.write_bytes(real_image_bytes())
    hosted = host.upload(str(src), "faceswap", "x")

    assert host.delete(hosted.public_id) is True
    assert host.delete(hosted.public_id) is False
