"""Pytest configuration and fixtures for the material generation client tests."""

import io
import json
import logging
import zipfile
from typing import List

import pytest
import requests
from PIL import Image

# Configure logging for tests
logging.basicConfig(level=logging.DEBUG)

_REASONS = {200: "OK", 400: "Bad Request", 404: "Not Found", 500: "Internal Server Error"}


def make_response(content=b"", status=200, url="http://backend.test/"):
    resp = requests.Response()
    resp.status_code = status
    resp._content = content
    resp.url = url
    resp.reason = _REASONS.get(status, "")
    return resp


def png_bytes(width=4, height=4, color=(200, 100, 50, 255)):
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def zip_bytes(entries):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buf.getvalue()


class FakeSession:
    """Stands in for requests.Session; replies from a queue and records calls."""

    def __init__(self, replies=None):
        self.headers = {}
        self.replies: List = list(replies or [])
        self.calls: List[dict] = []
        self.closed = False

    def queue(self, *replies):
        self.replies.extend(replies)

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        if not self.replies:
            raise AssertionError(f"unexpected {method} {url}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def close(self):
        self.closed = True


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def transport(session):
    from material_transport import TransportClient

    return TransportClient(timeout=5, session=session)


@pytest.fixture
def local_generator(transport):
    from material_core import MaterialGenerator

    return MaterialGenerator({"backend": "local"}, transport=transport)


@pytest.fixture
def hosted_generator(transport):
    from material_core import MaterialGenerator

    return MaterialGenerator(
        {"backend": "hosted", "base_url": "https://api.test/v1/"}, transport=transport
    )


@pytest.fixture
def signed_url_body():
    return json.dumps({"download_url": "https://bucket.test/material.zip?sig=abc"}).encode()


def deflated_zip(name, data):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(name, data)
    return buf.getvalue()


def corrupt_first_entry(data):
    """Overwrite the first entry's compressed stream with an invalid deflate block."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        info = zf.infolist()[0]
    start = info.header_offset + 30 + len(info.filename.encode()) + len(info.extra)
    buf = bytearray(data)
    buf[start:start + info.compress_size] = b"\xff" * info.compress_size
    return bytes(buf)


def mark_encrypted(data):
    """Set the encryption flag on a single-entry archive."""
    buf = bytearray(data)
    for signature, flag_offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
        pos = buf.find(signature)
        buf[pos + flag_offset] |= 0x01
    return bytes(buf)
