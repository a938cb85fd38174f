#!/usr/bin/env python3
"""
color_sort.py — Sort ~1000 random Kulturpool images by their dominant color.

Fetches random IMAGE records in pages of 250, downloads each preview in
batches of 20 (10s timeout per image, failures dropped), extracts the
dominant color with K-means, and lays the images out in a vertical-first
grid sorted by hue, brightness, or saturation. The mosaics themselves are
drawn by generate_mosaics.py.

Usage:
    python color_sort.py                       # 1000 images, all three sorts
    python color_sort.py --total 200           # smaller run
    python color_sort.py --sort brightness     # only one mosaic
    python color_sort.py --width 1600          # wider canvas
"""
from __future__ import annotations

import argparse
import asyncio
import colorsys
import logging
import math
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image
from sklearn.cluster import KMeans
from tqdm import tqdm

from image_loader import IMAGE_TIMEOUT, fetch_image, load_images
from kulturpool_api import Document, KulturpoolError, random_images_query, search, with_http_previews

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

TOTAL_IMAGES = 1000
FETCH_BATCH = 250
ANALYZE_BATCH = 20
N_CLUSTERS = 5
ANALYSIS_SIZE = 200  # px, longest side before clustering

CANVAS_HEIGHT = 600
MIN_CANVAS_WIDTH = 800
CANVAS_MARGIN = 40

SORT_METHODS = ("hue", "brightness", "saturation")
DEFAULT_SORT = "hue"

OUTPUT_DIR = Path(__file__).resolve().parent / "rendered" / "color_sort"

log = logging.getLogger("kulturpool.color")


# ---------------------------------------------------------------------------
# Color math
# ---------------------------------------------------------------------------

def rgb_to_hsl(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """(h in degrees 0-360, s 0-1, l 0-1)."""
    h, l, s = colorsys.rgb_to_hls(r / 255, g / 255, b / 255)
    return (h * 360, s, l)


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return f"#{r:02x}{g:02x}{b:02x}"


def text_color(lightness: float) -> str:
    """Legible label color on top of a swatch."""
    return "#000" if lightness > 0.5 else "#fff"


def dominant_color(img: Image.Image, n_clusters: int = N_CLUSTERS) -> Tuple[int, int, int]:
    """Center of the largest K-means cluster over the image's RGB pixels."""
    img = img.convert("RGB")
    img.thumbnail((ANALYSIS_SIZE, ANALYSIS_SIZE))
    pixels = np.asarray(img, dtype=np.float32).reshape(-1, 3)

    # Few distinct colors: the most frequent one is exact, no clustering needed
    uniq, counts = np.unique(pixels, axis=0, return_counts=True)
    if len(uniq) <= n_clusters:
        r, g, b = uniq[int(np.argmax(counts))]
        return int(r), int(g), int(b)

    km = KMeans(n_clusters=n_clusters, n_init=3, max_iter=100, random_state=42)
    labels = km.fit_predict(pixels)
    largest = int(np.argmax(np.bincount(labels, minlength=n_clusters)))
    r, g, b = np.clip(np.rint(km.cluster_centers_[largest]), 0, 255).astype(int)
    return int(r), int(g), int(b)


@dataclass
class ColorRecord:
    index: int
    title: str
    is_shown_at: Optional[str]
    preview_image: str
    rgb: Tuple[int, int, int]
    hsl: Tuple[float, float, float]
    hex: str
    thumb: Optional[Image.Image] = field(default=None, repr=False)

    @classmethod
    def from_image(cls, index: int, doc: Document, img: Image.Image) -> "ColorRecord":
        r, g, b = dominant_color(img)
        thumb = img.copy()
        thumb.thumbnail((ANALYSIS_SIZE, ANALYSIS_SIZE))
        return cls(
            index=index,
            title=doc.title or "Untitled",
            is_shown_at=doc.is_shown_at,
            preview_image=doc.preview_image or "",
            rgb=(r, g, b),
            hsl=rgb_to_hsl(r, g, b),
            hex=rgb_to_hex(r, g, b),
            thumb=thumb,
        )

    def describe(self) -> str:
        h, s, l = self.hsl
        return (f"{self.hex}  RGB: {self.rgb[0]}, {self.rgb[1]}, {self.rgb[2]}  "
                f"Hue: {round(h)}°  Saturation: {round(s * 100)}%  "
                f"Lightness: {round(l * 100)}%  {self.title}")


# ---------------------------------------------------------------------------
# Sorting and layout
# ---------------------------------------------------------------------------

def sort_key(method: str) -> Callable[[ColorRecord], float]:
    if method == "brightness":
        return lambda rec: rec.hsl[2]
    if method == "saturation":
        return lambda rec: -rec.hsl[1]  # most saturated first
    return lambda rec: rec.hsl[0]


def sort_images(records: Sequence[ColorRecord], method: str = DEFAULT_SORT) -> List[ColorRecord]:
    """Stable sort into a new list; unknown methods fall back to hue."""
    return sorted(records, key=sort_key(method))


@dataclass(frozen=True)
class GridLayout:
    rows: int
    cols: int
    cell_width: float
    cell_height: float
    image_size: float

    def cell_center(self, i: int) -> Tuple[float, float]:
        """Fill columns top to bottom, then move right."""
        row = i % self.rows
        col = i // self.rows
        return (col * self.cell_width + self.cell_width / 2,
                row * self.cell_height + self.cell_height / 2)


def grid_layout(n: int, width: float, height: float) -> GridLayout:
    if n <= 0:
        return GridLayout(0, 0, width, height, 0.0)
    aspect = width / height
    rows = int(math.ceil(math.sqrt(n / aspect)))
    cols = int(math.ceil(n / rows))
    cell_w = width / cols
    cell_h = height / rows
    return GridLayout(rows, cols, cell_w, cell_h, min(cell_w, cell_h) - 2)


def canvas_width(available: float) -> int:
    return int(max(available - CANVAS_MARGIN, MIN_CANVAS_WIDTH))


# ---------------------------------------------------------------------------
# Fetch + analysis
# ---------------------------------------------------------------------------

def fetch_image_documents(total: int = TOTAL_IMAGES, batch_size: int = FETCH_BATCH) -> List[Document]:
    documents = []  # type: List[Document]
    batches = int(math.ceil(total / batch_size))
    for i in range(batches):
        result = search(random_images_query(per_page=batch_size, page=i + 1))
        documents.extend(with_http_previews(result.documents))
        print(f"  Fetching batch {i + 1}/{batches}... ({len(documents)} usable)")
        if len(documents) >= total:
            break
    return documents[:total]


async def analyze_documents(
    documents: Sequence[Document],
    batch_size: int = ANALYZE_BATCH,
    timeout: float = IMAGE_TIMEOUT,
    fetch: Callable[[str, float], Image.Image] = fetch_image,
    show_progress: bool = True,
) -> List[ColorRecord]:
    """Download and color-analyze in batches; keep whatever succeeds."""
    records = []  # type: List[ColorRecord]
    bar = tqdm(total=len(documents), desc="colors", disable=not show_progress)
    for start in range(0, len(documents), batch_size):
        batch = documents[start:start + batch_size]
        results = await load_images([d.preview_image for d in batch],
                                    concurrency=batch_size, timeout=timeout, fetch=fetch)
        for result in results:
            if not result.ok:
                continue
            records.append(ColorRecord.from_image(start + result.index,
                                                  batch[result.index], result.image))
        bar.update(len(batch))
        bar.set_postfix(analyzed=len(records))
        await asyncio.sleep(0.01)
    bar.close()
    log.info("Successfully analyzed %d of %d images", len(records), len(documents))
    return records


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    from generate_mosaics import generate_all

    parser = argparse.ArgumentParser(description="Color-sorted mosaic of random Kulturpool images")
    parser.add_argument("--total", type=int, default=TOTAL_IMAGES,
                        help=f"Images to fetch (default: {TOTAL_IMAGES})")
    parser.add_argument("--sort", choices=SORT_METHODS, default=None,
                        help="Render only this sort (default: all)")
    parser.add_argument("--width", type=int, default=1240,
                        help="Available width; canvas is width-40, at least 800")
    parser.add_argument("--out", type=Path, default=OUTPUT_DIR)
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s  %(levelname)-7s  %(message)s")

    try:
        documents = fetch_image_documents(args.total)
    except KulturpoolError as e:
        print(f"Failed to load images from the API: {e}", file=sys.stderr)
        return 1
    print(f"Analyzing colors of {len(documents)} images...")

    records = asyncio.run(analyze_documents(documents))
    if not records:
        print("No images were successfully analyzed.", file=sys.stderr)
        return 1

    methods = [args.sort] if args.sort else list(SORT_METHODS)
    width = canvas_width(args.width)
    generate_all(records, args.out, methods, width, CANVAS_HEIGHT)

    for rec in sort_images(records, methods[0])[:5]:
        print(f"  {rec.describe()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
