"""Unit tests for concurrent image loading."""

import asyncio
import http.client
import io
import urllib.error
from unittest import mock

import pytest
from PIL import Image

from conftest import fake_response, png_bytes
from image_loader import (CompletionBarrier, ImageLoadError, LoadResult, decode_image, fetch_image,
                          load_images)


class TestCompletionBarrier:
    def test_fires_once_when_all_arrive(self):
        fired = []
        barrier = CompletionBarrier(3, lambda: fired.append(1))
        barrier.arrive()
        barrier.arrive()
        assert fired == []
        assert not barrier.done
        barrier.arrive()
        barrier.arrive()
        assert fired == [1]
        assert barrier.done

    def test_zero_expected_fires_immediately(self):
        fired = []
        barrier = CompletionBarrier(0, lambda: fired.append(1))
        assert barrier.done
        barrier.arrive()
        assert fired == [1]


class TestFetchImage:
    def test_decodes_to_rgb(self):
        with mock.patch("urllib.request.urlopen",
                        return_value=fake_response(raw=png_bytes((0, 0, 255), (6, 4)))):
            img = fetch_image("https://img.example/a.png")
        assert img.mode == "RGB"
        assert img.size == (6, 4)
        assert img.getpixel((0, 0)) == (0, 0, 255)

    def test_http_error(self):
        err = urllib.error.HTTPError("https://img.example/x", 404, "Not Found", hdrs=None,
                                     fp=io.BytesIO(b""))
        with mock.patch("urllib.request.urlopen", side_effect=err):
            with pytest.raises(ImageLoadError, match="404"):
                fetch_image("https://img.example/x")

    def test_network_error(self):
        with mock.patch("urllib.request.urlopen", side_effect=urllib.error.URLError("down")):
            with pytest.raises(ImageLoadError):
                fetch_image("https://img.example/x")

    def test_connection_reset_while_reading(self):
        resp = fake_response(raw=b"")
        resp.read.side_effect = ConnectionResetError("peer reset mid-body")
        with mock.patch("urllib.request.urlopen", return_value=resp):
            with pytest.raises(ImageLoadError, match="img.example/a.jpg"):
                fetch_image("https://img.example/a.jpg")

    def test_truncated_body(self):
        resp = fake_response(raw=b"")
        resp.read.side_effect = http.client.IncompleteRead(b"\x89PNG")
        with mock.patch("urllib.request.urlopen", return_value=resp):
            with pytest.raises(ImageLoadError):
                fetch_image("https://img.example/a.jpg")

    def test_garbage_bytes(self):
        with pytest.raises(ImageLoadError, match="decode"):
            decode_image(b"definitely not an image", "https://img.example/x")

    def test_palette_image_converted(self):
        buf = io.BytesIO()
        Image.new("P", (3, 3)).save(buf, "GIF")
        assert decode_image(buf.getvalue()).mode == "RGB"


class TestLoadImages:
    @staticmethod
    def fake_fetch(url, timeout):
        if "bad" in url:
            raise ImageLoadError(f"Failed to load image (404): {url}")
        return Image.new("RGB", (4, 4), (10, 20, 30))

    def test_results_in_input_order(self):
        urls = ["https://i/1", "https://i/bad", "https://i/3"]
        results = asyncio.run(load_images(urls, concurrency=2, fetch=self.fake_fetch))
        assert [r.index for r in results] == [0, 1, 2]
        assert [r.url for r in results] == urls
        assert [r.ok for r in results] == [True, False, True]
        assert "404" in results[1].error

    def test_barrier_counts_failures_too(self):
        fired = []
        barrier = CompletionBarrier(3, lambda: fired.append(1))
        asyncio.run(load_images(["a", "bad", "c"], barrier=barrier, fetch=self.fake_fetch))
        assert fired == [1]
        assert barrier.arrived == 3

    def test_empty(self):
        assert asyncio.run(load_images([], fetch=self.fake_fetch)) == []

    def test_read_failure_keeps_other_results(self):
        good = fake_response(raw=png_bytes((0, 255, 0), (2, 2)))
        dropped = fake_response(raw=b"")
        dropped.read.side_effect = ConnectionResetError("peer reset mid-body")

        def urlopen(req, timeout):
            return dropped if req.full_url.endswith("b.jpg") else good

        urls = ["https://img.example/a.jpg", "https://img.example/b.jpg"]
        with mock.patch("urllib.request.urlopen", side_effect=urlopen):
            results = asyncio.run(load_images(urls, concurrency=1))
        assert [r.ok for r in results] == [True, False]
        assert "peer reset" in results[1].error


class TestLoadResult:
    def test_ok(self):
        assert not LoadResult(0, "u").ok
        assert LoadResult(0, "u", image=Image.new("RGB", (1, 1))).ok
