#!/usr/bin/env python3
"""
fullscreen_shuffle.py — Rapid-fire slideshow of seasonal Kulturpool images.

Picks one of the seasonal queries at random, fetches 100 random IMAGE
records, preloads the first 10 previews, then flips to the next image every
250ms while keeping the next 10 preloaded. Images that fail to load are
skipped.

Usage:
    python fullscreen_shuffle.py                         # terminal ticker, Ctrl+C to stop
    python fullscreen_shuffle.py --gif shuffle.gif       # 40-frame animated GIF
    python fullscreen_shuffle.py --gif out.gif --frames 120 --size 800 600
    python fullscreen_shuffle.py --query winter --open   # open the first image's page
"""
from __future__ import annotations

import argparse
import logging
import random
import sys
import time
import webbrowser
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from concurrent.futures import wait
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set

from PIL import Image

from image_loader import IMAGE_TIMEOUT, fetch_image
from kulturpool_api import Document, KulturpoolError, random_images_query, search, with_http_previews

SEASONAL_QUERIES = ("sommer", "frühling", "herbst", "winter")
PER_PAGE = 100
PRELOAD_BUFFER = 10
INTERVAL = 0.25  # seconds per image
GIF_FRAMES = 40
GIF_SIZE = (960, 640)

log = logging.getLogger("kulturpool.shuffle")


class Slideshow:
    """Cyclic image queue with a rolling preload window."""

    def __init__(
        self,
        queries: Sequence[str] = SEASONAL_QUERIES,
        preload_buffer: int = PRELOAD_BUFFER,
        interval: float = INTERVAL,
        timeout: float = IMAGE_TIMEOUT,
        fetch: Callable[[str, float], Image.Image] = fetch_image,
        opener: Optional[Callable[[str], object]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.queries = tuple(queries)
        self.preload_buffer = preload_buffer
        self.interval = interval
        self.timeout = timeout
        self.fetch = fetch
        self.opener = opener or webbrowser.open_new_tab
        self.rng = rng or random.Random()
        self._pool = None  # type: Optional[ThreadPoolExecutor]
        self.reset()

    def reset(self) -> None:
        self.query = None  # type: Optional[str]
        self.documents = []  # type: List[Document]
        self.preloaded = {}  # type: Dict[int, Image.Image]
        self.failed = set()  # type: Set[int]
        self._pending = {}  # type: Dict[int, Future]
        self.current_index = 0
        self.running = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def pick_query(self) -> str:
        return self.rng.choice(self.queries)

    def fetch_documents(self, query: Optional[str] = None) -> List[Document]:
        self.query = query or self.pick_query()
        log.info('Searching for: "%s"', self.query)
        result = search(random_images_query(q=self.query, per_page=PER_PAGE))
        self.documents = with_http_previews(result.documents, limit=PER_PAGE)
        log.info("Loaded %d documents with images and metadata", len(self.documents))
        if not self.documents:
            raise KulturpoolError("No valid images found in API response")
        return self.documents

    def _executor(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=max(1, self.preload_buffer),
                                            thread_name_prefix="preload")
        return self._pool

    def preload(self, index: int) -> Optional[Future]:
        if index >= len(self.documents) or index in self.preloaded or index in self.failed:
            return None
        if index in self._pending:
            return self._pending[index]
        url = self.documents[index].preview_image
        future = self._executor().submit(self.fetch, url, self.timeout)
        self._pending[index] = future
        return future

    def _settle(self, index: int, future: Future) -> None:
        self._pending.pop(index, None)
        try:
            self.preloaded[index] = future.result()
        except KulturpoolError as e:
            log.warning("Failed to preload image %d: %s", index, e)
            self.failed.add(index)

    def collect(self) -> None:
        """Move finished preloads into `preloaded` / `failed`."""
        for index, future in list(self._pending.items()):
            if future.done():
                self._settle(index, future)

    def preload_initial(self) -> int:
        """Preload the first batch and wait for all of it. Returns successes."""
        count = min(self.preload_buffer, len(self.documents))
        futures = [f for f in (self.preload(i) for i in range(count)) if f is not None]
        wait(futures, timeout=self.timeout + 1)
        self.collect()
        loaded = sum(1 for i in range(count) if i in self.preloaded)
        if loaded < count:
            log.warning("%d of %d initial images failed to preload", count - loaded, count)
        return loaded

    def preload_next_batch(self) -> None:
        n = len(self.documents)
        for i in range(1, self.preload_buffer + 1):
            self.preload((self.current_index + i) % n)

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def start(self, query: Optional[str] = None) -> Document:
        if self.running:
            return self.current_document()
        self.reset()
        self.fetch_documents(query)
        self.preload_initial()
        self.running = True
        self.current_index = 0
        if 0 in self.failed:
            self.next_image()
        return self.current_document()

    def current_document(self) -> Optional[Document]:
        if not self.documents:
            return None
        return self.documents[self.current_index]

    def next_image(self) -> Optional[Document]:
        """Advance one step, skipping images known to have failed."""
        if not self.running or not self.documents:
            return None
        self.collect()
        n = len(self.documents)
        for _ in range(n):
            self.current_index = (self.current_index + 1) % n
            if self.current_index not in self.failed:
                break
        else:
            log.warning("Every image failed to load; stopping")
            self.stop()
            return None
        self.preload_next_batch()
        return self.current_document()

    def mark_failed(self, index: int) -> Optional[Document]:
        self.failed.add(index)
        self.preloaded.pop(index, None)
        if self.running and index == self.current_index:
            log.warning("Failed to load image, skipping to next")
            return self.next_image()
        return self.current_document()

    def current_image(self, wait_for: bool = False) -> Optional[Image.Image]:
        index = self.current_index
        if index in self.preloaded:
            return self.preloaded[index]
        future = self.preload(index)
        if future is None or not wait_for:
            return None
        try:
            future.result(timeout=self.timeout + 1)
        except FutureTimeout:
            log.warning("Image load timeout: %s", self.documents[index].preview_image)
            future.cancel()
            self._pending.pop(index, None)
            self.failed.add(index)
            return None
        except KulturpoolError:
            pass
        self._settle(index, future)
        return self.preloaded.get(index)

    def open_current(self) -> Optional[str]:
        doc = self.current_document()
        if doc is None or not doc.is_shown_at:
            log.warning("Missing isShownAt URL for document: %s", doc.title if doc else None)
            return None
        log.info("Opening detail page: %s (%s)", doc.is_shown_at, doc.title or "Untitled")
        self.opener(doc.is_shown_at)
        return doc.is_shown_at

    def stop(self) -> None:
        self.running = False
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None
        self._pending.clear()


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def fit_frame(img: Image.Image, size=GIF_SIZE) -> Image.Image:
    """Letterbox onto a black frame, aspect preserved."""
    frame = Image.new("RGB", size, (0, 0, 0))
    scaled = img.copy()
    scaled.thumbnail(size, Image.LANCZOS)
    frame.paste(scaled, ((size[0] - scaled.width) // 2, (size[1] - scaled.height) // 2))
    return frame


def record_gif(show: Slideshow, out_path: Path, frames: int = GIF_FRAMES, size=GIF_SIZE) -> int:
    images = []  # type: List[Image.Image]
    attempts = 0
    while show.running and len(images) < frames and attempts < frames * 3:
        attempts += 1
        img = show.current_image(wait_for=True)
        if img is None:
            show.mark_failed(show.current_index)
            continue
        images.append(fit_frame(img, size))
        show.next_image()
        sys.stdout.write(f"\r  frame {len(images)}/{frames}  ")
        sys.stdout.flush()
    print()
    if not images:
        return 0
    out_path.parent.mkdir(parents=True, exist_ok=True)
    images[0].save(str(out_path), save_all=True, append_images=images[1:],
                   duration=int(show.interval * 1000), loop=0)
    return len(images)


def run_ticker(show: Slideshow, frames: int = 0) -> None:
    shown = 0
    n = len(show.documents)
    while show.running and (not frames or shown < frames):
        doc = show.current_document()
        state = "ok" if show.current_index in show.preloaded else "…"
        title = (doc.title or "Untitled")[:70] if doc else ""
        sys.stdout.write(f"\r  [{show.current_index + 1:>3}/{n}] {state:<2} {title:<70}")
        sys.stdout.flush()
        shown += 1
        time.sleep(show.interval)
        show.next_image()
    print()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Seasonal Kulturpool image shuffle")
    parser.add_argument("--query", choices=SEASONAL_QUERIES, default=None,
                        help="Fixed query (default: random season)")
    parser.add_argument("--gif", type=Path, default=None, help="Record an animated GIF instead")
    parser.add_argument("--frames", type=int, default=None,
                        help=f"Frames to show/record (GIF default: {GIF_FRAMES}, ticker: until Ctrl+C)")
    parser.add_argument("--size", type=int, nargs=2, metavar=("W", "H"), default=list(GIF_SIZE))
    parser.add_argument("--open", action="store_true", help="Open the first image's detail page")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s  %(levelname)-7s  %(message)s")

    show = Slideshow()
    try:
        first = show.start(args.query)
    except KulturpoolError as e:
        log.error("Error starting slideshow: %s", e)
        print("Failed to load images from the API.", file=sys.stderr)
        show.stop()
        return 1

    print(f'"{show.query}": {len(show.documents)} images, {len(show.preloaded)} preloaded')
    if args.open and first is not None:
        show.open_current()

    try:
        if args.gif:
            count = record_gif(show, args.gif, args.frames or GIF_FRAMES, tuple(args.size))
            if not count:
                print("No frames could be loaded.", file=sys.stderr)
                return 1
            print(f"  {count} frames → {args.gif}")
        else:
            print("Ctrl+C to stop.\n")
            run_ticker(show, args.frames or 0)
    except KeyboardInterrupt:
        print("\nStopped.")
    except OSError as e:
        print(f"Could not write output: {e}", file=sys.stderr)
        return 1
    finally:
        show.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
