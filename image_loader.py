#!/usr/bin/env python3
"""
image_loader.py — Concurrent image fetching with explicit per-request results.

Each request resolves to a LoadResult (image or error) instead of firing
callbacks. Batches wait for every request to finish and keep the successes;
failures are logged and otherwise ignored.
"""
from __future__ import annotations

import asyncio
import http.client
import io
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from PIL import Image, UnidentifiedImageError

from kulturpool_api import USER_AGENT, KulturpoolError

IMAGE_TIMEOUT = 10.0
MAX_CONCURRENT = 20
MAX_IMAGE_BYTES = 25 * 1024 * 1024

log = logging.getLogger("kulturpool.images")


class ImageLoadError(KulturpoolError):
    pass


@dataclass
class LoadResult:
    index: int
    url: str
    image: Optional[Image.Image] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.image is not None


class CompletionBarrier:
    """Counts completions; fires `on_complete` once when all have arrived."""

    def __init__(self, expected: int, on_complete: Optional[Callable[[], Any]] = None):
        self.expected = expected
        self.arrived = 0
        self.on_complete = on_complete
        self.fired = False
        if expected <= 0:
            self._fire()

    @property
    def done(self) -> bool:
        return self.fired

    def arrive(self) -> None:
        self.arrived += 1
        if self.arrived >= self.expected:
            self._fire()

    def _fire(self) -> None:
        if self.fired:
            return
        self.fired = True
        if self.on_complete is not None:
            self.on_complete()


def fetch_image(url: str, timeout: float = IMAGE_TIMEOUT) -> Image.Image:
    """Download and decode one image as RGB. Raises ImageLoadError."""
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            data = resp.read(MAX_IMAGE_BYTES + 1)
    except urllib.error.HTTPError as e:
        raise ImageLoadError(f"Failed to load image ({e.code}): {url}") from e
    except urllib.error.URLError as e:
        raise ImageLoadError(f"Failed to load image ({e.reason}): {url}") from e
    except TimeoutError as e:
        raise ImageLoadError(f"Image load timeout: {url}") from e
    except ValueError as e:
        raise ImageLoadError(f"Invalid image URL: {url}") from e
    except (OSError, http.client.HTTPException) as e:
        raise ImageLoadError(f"Failed to load image ({e!r}): {url}") from e
    if len(data) > MAX_IMAGE_BYTES:
        raise ImageLoadError(f"Image too large: {url}")
    return decode_image(data, url)


def decode_image(data: bytes, url: str = "") -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageLoadError(f"Failed to decode image: {url}") from e
    return img.convert("RGB")


async def load_image(
    index: int,
    url: str,
    semaphore: asyncio.Semaphore,
    timeout: float = IMAGE_TIMEOUT,
    fetch: Callable[[str, float], Image.Image] = fetch_image,
) -> LoadResult:
    async with semaphore:
        try:
            image = await asyncio.wait_for(asyncio.to_thread(fetch, url, timeout),
                                           timeout=timeout + 1)
            return LoadResult(index, url, image=image)
        except asyncio.TimeoutError:
            log.warning("Image load timeout: %s", url)
            return LoadResult(index, url, error="Image load timeout")
        except ImageLoadError as e:
            log.warning("%s", e)
            return LoadResult(index, url, error=str(e))


async def load_images(
    urls: Sequence[str],
    concurrency: int = MAX_CONCURRENT,
    timeout: float = IMAGE_TIMEOUT,
    barrier: Optional[CompletionBarrier] = None,
    fetch: Callable[[str, float], Image.Image] = fetch_image,
) -> List[LoadResult]:
    """Load all URLs concurrently; one LoadResult per URL, in input order."""
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def one(i: int, url: str) -> LoadResult:
        result = await load_image(i, url, semaphore, timeout, fetch)
        if barrier is not None:
            barrier.arrive()
        return result

    results = await asyncio.gather(*(one(i, u) for i, u in enumerate(urls)))
    failed = sum(1 for r in results if not r.ok)
    if failed:
        log.warning("%d of %d images failed to load", failed, len(results))
    return list(results)
