#!/usr/bin/env python3
"""
similarity_graph.py — Items and shared-tag links for the clustering demo.

Two items are linked when they share at least one subject tag or at least
one medium tag. Links are unweighted and each unordered pair is visited once,
so the result never holds duplicates or self-links.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from kulturpool_api import Document

NODE_RADIUS = 32.0


@dataclass
class Item:
    """A graph node. Position is mutable until the layout freezes it."""
    id: int
    title: str
    preview_image: Optional[str] = None
    is_shown_at: Optional[str] = None
    full_view_metadata: Optional[str] = None
    subject: FrozenSet[str] = frozenset()
    medium: FrozenSet[str] = frozenset()
    x: float = 0.0
    y: float = 0.0
    r: float = NODE_RADIUS
    fx: Optional[float] = None
    fy: Optional[float] = None
    image: Any = field(default=None, repr=False)

    @property
    def pinned(self) -> bool:
        return self.fx is not None and self.fy is not None


@dataclass(frozen=True)
class Link:
    source: int
    target: int


def shares_tag(a: Item, b: Item) -> bool:
    return not a.subject.isdisjoint(b.subject) or not a.medium.isdisjoint(b.medium)


def build_links(items: Sequence[Item]) -> List[Link]:
    """Link every pair (i, j), i < j, with a common subject or medium."""
    links = []
    n = len(items)
    for i in range(n):
        a = items[i]
        if not a.subject and not a.medium:
            continue
        for j in range(i + 1, n):
            if shares_tag(a, items[j]):
                links.append(Link(i, j))
    return links


def link_pairs(links: Iterable[Link]) -> List[Tuple[int, int]]:
    return [(l.source, l.target) for l in links]


def degrees(links: Iterable[Link], n: int) -> List[int]:
    counts = [0] * n
    for link in links:
        counts[link.source] += 1
        counts[link.target] += 1
    return counts


def items_from_documents(
    documents: Iterable[Document],
    width: float,
    height: float,
    radius: float = NODE_RADIUS,
    rng: Optional[random.Random] = None,
) -> List[Item]:
    """Keep documents with a preview image and a title, scattered randomly."""
    rng = rng or random.Random()
    items = []
    for doc in documents:
        if not doc.preview_image or not doc.title:
            continue
        items.append(Item(
            id=len(items),
            title=doc.title,
            preview_image=doc.preview_image,
            is_shown_at=doc.is_shown_at,
            full_view_metadata=doc.full_view_metadata,
            subject=frozenset(doc.subject),
            medium=frozenset(doc.medium),
            x=rng.random() * width,
            y=rng.random() * height,
            r=radius,
        ))
    return items
