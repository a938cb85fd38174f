"""
Shared fixtures for the Kulturpool demo test suite.

Provides:
- Fake urlopen responses (JSON or raw bytes)
- Synthetic Pillow images
- Document factories
"""

import io
import json
from unittest import mock

import pytest
from PIL import Image

from kulturpool_api import Document


def fake_response(payload=None, raw=None):
    """Context-manager mock standing in for urlopen()'s return value."""
    resp = mock.MagicMock()
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    resp.read.return_value = raw if raw is not None else json.dumps(payload).encode("utf-8")
    return resp


def png_bytes(color=(255, 0, 0), size=(8, 8)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture()
def solid_image():
    def make(color=(255, 0, 0), size=(40, 30)):
        return Image.new("RGB", size, color)
    return make


@pytest.fixture()
def make_doc():
    counter = {"n": 0}

    def make(**kwargs):
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "id": str(n),
            "title": f"Object {n}",
            "preview_image": f"https://img.example/{n}.jpg",
            "is_shown_at": f"https://detail.example/{n}",
        }
        fields.update(kwargs)
        return Document(**fields)
    return make
