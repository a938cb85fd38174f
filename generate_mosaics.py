#!/usr/bin/env python3
"""
generate_mosaics.py — Render color-sorted mosaics from analyzed Kulturpool images.

Each mosaic tiles every analyzed image on a vertical-first grid, sorted by a
different color dimension (hue, brightness, saturation). Every tile is first
filled with its dominant color, then the center-cropped thumbnail is pasted
on top, so a missing thumbnail still shows its swatch.

Writes by_<method>.jpg plus by_<method>.json (per-tile title, link,
position, and color) for each sort, and mosaics.json indexing them all.
Called from color_sort.py.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from PIL import Image, ImageDraw

from color_sort import ColorRecord, GridLayout, grid_layout, sort_images, text_color

BACKGROUND = (17, 17, 17)
TILE_RADIUS = 2

TITLES = {
    "hue": ("By Dominant Hue", "Sorted by hue angle (0°→360°, red→yellow→green→blue→violet)"),
    "brightness": ("By Brightness", "Sorted dark → light by HSL lightness"),
    "saturation": ("By Saturation", "Sorted vivid → desaturated by HSL saturation"),
}


def _square_thumb(img, size):
    # type: (Image.Image, int) -> Image.Image
    """Center-crop to square, then resize."""
    w, h = img.size
    side = min(w, h)
    left = (w - side) // 2
    top = (h - side) // 2
    img = img.crop((left, top, left + side, top + side))
    return img.resize((size, size), Image.LANCZOS)


def build_mosaic(records, layout, width, height, out_path):
    # type: (Sequence[ColorRecord], GridLayout, int, int, Path) -> Optional[str]
    """Draw records (already sorted) onto the grid. Returns output path."""
    if not records:
        print(f"  [SKIP] {out_path.name} — no analyzed images")
        return None

    size = max(1, int(layout.image_size))
    mosaic = Image.new("RGB", (width, height), BACKGROUND)
    draw = ImageDraw.Draw(mosaic)

    for idx, rec in enumerate(records):
        cx, cy = layout.cell_center(idx)
        x = int(round(cx - size / 2))
        y = int(round(cy - size / 2))
        draw.rounded_rectangle((x, y, x + size - 1, y + size - 1),
                               radius=TILE_RADIUS, fill=rec.hex)
        if rec.thumb is None:
            continue
        try:
            mosaic.paste(_square_thumb(rec.thumb, size), (x, y))
        except (OSError, ValueError) as e:
            print(f"  [WARN] tile {rec.index}: {e}")  # swatch stays

    out_path.parent.mkdir(parents=True, exist_ok=True)
    mosaic.save(str(out_path), "JPEG", quality=92)
    size_kb = out_path.stat().st_size / 1024
    print(f"  [{out_path.stem}] {len(records)} images, {layout.cols} cols × {layout.rows} rows, "
          f"{size}px tiles → {out_path.name} ({size_kb:.0f} KB)")
    return str(out_path)


def tile_metadata(records, layout):
    # type: (Sequence[ColorRecord], GridLayout) -> List[Dict]
    tiles = []
    for idx, rec in enumerate(records):
        cx, cy = layout.cell_center(idx)
        h, s, l = rec.hsl
        tiles.append({
            "title": rec.title,
            "isShownAt": rec.is_shown_at,
            "previewImage": rec.preview_image,
            "x": round(cx, 1),
            "y": round(cy, 1),
            "hex": rec.hex,
            "rgb": list(rec.rgb),
            "hsl": {"h": round(h, 2), "s": round(s, 4), "l": round(l, 4)},
            "textColor": text_color(l),
        })
    return tiles


def generate_all(records, out_dir, methods, width, height):
    # type: (Sequence[ColorRecord], Path, Sequence[str], int, int) -> List[Dict]
    """Render one mosaic per sort method. Returns metadata list."""
    out_dir.mkdir(parents=True, exist_ok=True)
    layout = grid_layout(len(records), width, height)
    print(f"Grid: {layout.cols} cols × {layout.rows} rows ({len(records)} images), "
          f"canvas {width} × {height}")

    mosaics = []  # type: List[Dict]
    for i, method in enumerate(methods, 1):
        title, desc = TITLES.get(method, TITLES["hue"])
        print(f"{i}/{len(methods)} {title}")
        ordered = sort_images(records, method)
        path = build_mosaic(ordered, layout, width, height, out_dir / f"by_{method}.jpg")
        if path is None:
            continue
        tiles_path = out_dir / f"by_{method}.json"
        tiles_path.write_text(json.dumps(tile_metadata(ordered, layout), indent=2,
                                         ensure_ascii=False))
        mosaics.append({
            "file": f"by_{method}.jpg",
            "tiles": tiles_path.name,
            "title": title,
            "desc": f"{desc} — {len(ordered)} images",
            "count": len(ordered),
        })

    meta_path = out_dir / "mosaics.json"
    with open(str(meta_path), "w") as f:
        json.dump(mosaics, f, indent=2)
    print(f"\nDone! {len(mosaics)} mosaics saved to {out_dir}")
    return mosaics
