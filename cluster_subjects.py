#!/usr/bin/env python3
"""
cluster_subjects.py — Force-directed clustering of one provider's collection.

Fetches ~300 records for a data provider, links records that share a subject
or medium, lets a force simulation pull related records together while their
preview images load, then freezes the layout and renders it to PNG (circular
image thumbnails with titles underneath) plus a JSON dump of positions/links.

Layout freeze policy: once every preview image has reported (loaded or
failed), wait SETTLE_SECONDS more, then stop the simulation and pin all nodes.

Usage:
    python cluster_subjects.py                           # Brenner Forum, 300 items
    python cluster_subjects.py --provider "Wien Museum"  # another provider
    python cluster_subjects.py --limit 100 --settle 2    # quicker run
    python cluster_subjects.py --zoom 0.5 --pan 400 300  # render zoomed out
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from PIL import Image, ImageDraw, ImageFont

from canvas_interaction import InteractionLayer, Transform
from force_layout import TICK_INTERVAL, ForceSimulation
from image_loader import (IMAGE_TIMEOUT, MAX_CONCURRENT, CompletionBarrier, LoadResult,
                          fetch_image, load_images)
from kulturpool_api import Document, KulturpoolError, SearchQuery, fetch_until, filter_eq
from similarity_graph import Item, build_links, items_from_documents

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DATA_PROVIDER = "Brenner Forum"
PER_PAGE = 50
MAX_ITEMS = 300
SETTLE_SECONDS = 5.0

CANVAS_WIDTH = 1600
CANVAS_HEIGHT = 1200
BACKGROUND = (255, 255, 255)
FALLBACK_FILL = "#ccc"
TITLE_FILL = "#222"
TITLE_OFFSET = 18
TITLE_WIDTH_FACTOR = 14
FONT_SIZE = 14

OUTPUT_DIR = Path(__file__).resolve().parent / "rendered"

log = logging.getLogger("kulturpool.cluster")


def fetch_documents(provider: str = DATA_PROVIDER, limit: int = MAX_ITEMS) -> List[Document]:
    query = SearchQuery(q="*", filter_by=filter_eq("dataProvider", provider),
                        page=1, per_page=PER_PAGE)
    docs = fetch_until(query, minimum=limit)
    return docs[:limit]


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class ClusterSession:
    """Everything one clustering run owns: items, links, simulation, interaction."""

    def __init__(
        self,
        documents: List[Document],
        width: int = CANVAS_WIDTH,
        height: int = CANVAS_HEIGHT,
        seed: Optional[int] = None,
        on_redraw: Optional[Callable[[], None]] = None,
        opener: Optional[Callable[[str], object]] = None,
    ):
        self.width = width
        self.height = height
        self.items = items_from_documents(documents, width, height,
                                          rng=random.Random(seed))
        self.links = build_links(self.items)
        self.simulation = ForceSimulation(self.items, self.links, width, height, seed=seed)
        self.redraws = 0
        self._on_redraw = on_redraw
        self.interaction = InteractionLayer(self.items, on_redraw=self.redraw, opener=opener)
        self.simulation.on_tick(lambda sim: self.redraw())
        self.frozen = False

    def redraw(self) -> None:
        self.redraws += 1
        if self._on_redraw is not None:
            self._on_redraw()

    async def settle_and_freeze(
        self,
        settle: float = SETTLE_SECONDS,
        tick_interval: float = TICK_INTERVAL,
        concurrency: int = MAX_CONCURRENT,
        timeout: float = IMAGE_TIMEOUT,
        fetch: Callable[[str, float], Image.Image] = fetch_image,
    ) -> List[LoadResult]:
        """Run the layout while images load; freeze `settle` seconds after the last one."""
        loop = asyncio.get_running_loop()
        settled = asyncio.Event()

        def schedule_freeze() -> None:
            log.info("All %d images reported; settling for %.1fs", len(self.items), settle)
            loop.call_later(settle, settled.set)

        barrier = CompletionBarrier(len(self.items), schedule_freeze)
        ticker = asyncio.create_task(self.simulation.run_async(tick_interval))

        results = await load_images([it.preview_image for it in self.items],
                                    concurrency=concurrency, timeout=timeout,
                                    barrier=barrier, fetch=fetch)
        for result in results:
            self.items[result.index].image = result.image

        await settled.wait()
        self.freeze()
        await ticker
        return results

    def freeze(self) -> None:
        self.simulation.stop()
        self.simulation.pin_all()
        self.interaction.enable()
        self.frozen = True
        log.info("Layout frozen after %d ticks (alpha=%.4f)",
                 self.simulation.ticks, self.simulation.alpha)
        self.redraw()

    def export(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "frozen": self.frozen,
            "nodes": [
                {"id": it.id, "title": it.title, "x": round(it.x, 2), "y": round(it.y, 2),
                 "r": it.r, "isShownAt": it.is_shown_at, "previewImage": it.preview_image,
                 "subject": sorted(it.subject), "medium": sorted(it.medium)}
                for it in self.items
            ],
            "links": [[l.source, l.target] for l in self.links],
        }

    def render(self, transform: Optional[Transform] = None) -> Image.Image:
        return render_graph(self.items, self.width, self.height,
                            transform or self.interaction.transform)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def cover_fit(img: Image.Image, diameter: int) -> Image.Image:
    """Scale to cover a diameter x diameter square, then center-crop."""
    w, h = img.size
    ratio = w / h if h else 1.0
    if ratio > 1:
        draw_w, draw_h = int(round(diameter * ratio)), diameter
    else:
        draw_w, draw_h = diameter, int(round(diameter / ratio))
    img = img.resize((max(1, draw_w), max(1, draw_h)), Image.LANCZOS)
    left = (img.width - diameter) // 2
    top = (img.height - diameter) // 2
    return img.crop((left, top, left + diameter, top + diameter))


def _fit_title(draw: ImageDraw.ImageDraw, text: str, font, max_width: float) -> str:
    if draw.textlength(text, font=font) <= max_width:
        return text
    while text and draw.textlength(text + "…", font=font) > max_width:
        text = text[:-1]
    return text + "…"


def render_graph(items: List[Item], width: int, height: int,
                 transform: Transform = Transform()) -> Image.Image:
    canvas = Image.new("RGB", (width, height), BACKGROUND)
    draw = ImageDraw.Draw(canvas)
    k = transform.k
    font_size = max(6, int(round(FONT_SIZE * k)))
    font = ImageFont.load_default(size=font_size)

    for item in items:
        cx, cy = transform.to_screen(item.x, item.y)
        r = item.r * k
        if cx + r * TITLE_WIDTH_FACTOR < 0 or cx - r * TITLE_WIDTH_FACTOR > width:
            continue
        if cy + r + TITLE_OFFSET * k < 0 or cy - r > height:
            continue
        box = (int(round(cx - r)), int(round(cy - r)),
               int(round(cx + r)), int(round(cy + r)))
        diameter = max(1, box[2] - box[0])

        if item.image is not None:
            thumb = cover_fit(item.image, diameter)
            mask = Image.new("L", (diameter, diameter), 0)
            ImageDraw.Draw(mask).ellipse((0, 0, diameter - 1, diameter - 1), fill=255)
            canvas.paste(thumb, box[:2], mask)
        else:
            draw.ellipse(box, fill=FALLBACK_FILL)

        title = _fit_title(draw, item.title, font, r * TITLE_WIDTH_FACTOR)
        tw = draw.textlength(title, font=font)
        baseline = cy + r + TITLE_OFFSET * k
        draw.text((cx - tw / 2, baseline - font_size), title, fill=TITLE_FILL, font=font)
    return canvas


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Cluster a provider's records by shared subject/medium")
    parser.add_argument("--provider", default=DATA_PROVIDER,
                        help=f"dataProvider to fetch (default: {DATA_PROVIDER})")
    parser.add_argument("--limit", type=int, default=MAX_ITEMS,
                        help=f"Max records (default: {MAX_ITEMS})")
    parser.add_argument("--width", type=int, default=CANVAS_WIDTH)
    parser.add_argument("--height", type=int, default=CANVAS_HEIGHT)
    parser.add_argument("--settle", type=float, default=SETTLE_SECONDS,
                        help=f"Seconds to keep simulating after images load (default: {SETTLE_SECONDS})")
    parser.add_argument("--seed", type=int, default=None, help="Seed for initial positions")
    parser.add_argument("--zoom", type=float, default=1.0, help="Zoom factor for the render")
    parser.add_argument("--pan", type=float, nargs=2, metavar=("DX", "DY"), default=None,
                        help="Pan offset in pixels for the render")
    parser.add_argument("--open-at", type=float, nargs=2, metavar=("X", "Y"), default=None,
                        help="Double-click at screen position: open the node's detail page")
    parser.add_argument("--out", type=Path, default=OUTPUT_DIR / "cluster.png")
    parser.add_argument("--json", type=Path, default=None,
                        help="Write frozen positions and links (default: next to --out)")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s  %(levelname)-7s  %(message)s")

    print(f"Fetching up to {args.limit} records from '{args.provider}'...")
    try:
        documents = fetch_documents(args.provider, args.limit)
    except KulturpoolError as e:
        print(f"Failed to fetch records: {e}", file=sys.stderr)
        return 1

    session = ClusterSession(documents, args.width, args.height, seed=args.seed)
    print(f"  {len(documents)} records → {len(session.items)} nodes with image + title, "
          f"{len(session.links)} links")
    if not session.items:
        print("Nothing to lay out.")
        return 1

    results = asyncio.run(session.settle_and_freeze(settle=args.settle))
    loaded = sum(1 for r in results if r.ok)
    print(f"  Images: {loaded} loaded, {len(results) - loaded} failed")
    print(f"  Layout: {session.simulation.ticks} ticks, frozen={session.frozen}")

    if args.zoom != 1.0:
        session.interaction.zoom(args.zoom, anchor=(args.width / 2, args.height / 2))
    if args.pan:
        session.interaction.pan_by(*args.pan)
    if args.open_at:
        url = session.interaction.double_click(*args.open_at)
        print(f"  Opened: {url}" if url else "  No node with a detail page at that position")

    args.out.parent.mkdir(parents=True, exist_ok=True)
    session.render().save(str(args.out))
    json_path = args.json or args.out.with_suffix(".json")
    json_path.write_text(json.dumps(session.export(), indent=2, ensure_ascii=False))
    print(f"    → {args.out}")
    print(f"    → {json_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
