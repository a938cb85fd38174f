#!/usr/bin/env python3
"""
automated_summaries.py — Search Kulturpool and summarize each hit with an LLM.

Runs one random-order IMAGE search, keeps up to 10 hits that have both a
preview image and a metadata URL, then fetches each hit's aggregatedCHO
metadata and asks the summarizer for a three-sentence explanation. Rows
fail independently: a broken metadata URL or LLM error only affects its row.

Usage:
    python automated_summaries.py Klimt                     # console listing
    python automated_summaries.py "Wiener Werkstätte" --html report.html
    python automated_summaries.py Schiele --backend gemini  # Gemini instead of OpenRouter
    OPENROUTER_API_KEY=sk-... python automated_summaries.py Donau
"""
from __future__ import annotations

import argparse
import html
import logging
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from kulturpool_api import (Document, KulturpoolError, RANDOM_SORT, SearchQuery, aggregated_cho,
                            fetch_metadata, filter_eq, search)
from summarizer import BACKENDS, OpenRouterSummarizer, make_summarizer

MAX_RESULTS = 10
WORKERS = 4
HIGHLIGHT_FIELDS = "title,description,creator,subject"

MSG_NO_KEY = "API key not configured. Please set your OpenRouter API key to enable AI summaries."
MSG_NO_METADATA = "No metadata URL available for AI summary."

log = logging.getLogger("kulturpool.summaries")


@dataclass
class SummaryRow:
    index: int
    document: Document
    summary: Optional[str] = None
    error: Optional[str] = None

    @property
    def title(self) -> str:
        return self.document.title or "Untitled"

    @property
    def creator(self) -> str:
        return ", ".join(self.document.creator) or "Unknown creator"

    @property
    def subject(self) -> str:
        return ", ".join(self.document.subject)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

def build_search_query(query: str) -> SearchQuery:
    return SearchQuery(
        q=query,
        sort_by=RANDOM_SORT,
        page=1,
        per_page=MAX_RESULTS,
        max_facet_values=1,
        highlight_full_fields=HIGHLIGHT_FIELDS,
        use_cache=False,
        filter_by=filter_eq("edmType", "IMAGE"),
    )


def build_search_url(query: str) -> str:
    return build_search_query(query).url()


def search_objects(query: str) -> List[Document]:
    """Hits with a preview image and a metadata URL, at most 10."""
    query = query.strip()
    if not query:
        raise ValueError("Search query must not be empty")
    log.info('Searching for: "%s"', query)
    result = search(build_search_query(query))
    docs = [d for d in result.documents if d.preview_image and d.full_view_metadata]
    return docs[:MAX_RESULTS]


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def summarize_document(index: int, doc: Document, summarizer) -> SummaryRow:
    row = SummaryRow(index, doc)
    if not summarizer.configured:
        row.error = MSG_NO_KEY
        return row
    if not doc.full_view_metadata:
        row.error = MSG_NO_METADATA
        return row
    try:
        log.debug("Fetching metadata for summary: %s", doc.full_view_metadata)
        cho = aggregated_cho(fetch_metadata(doc.full_view_metadata))
        row.summary = summarizer.summarize(cho)
    except KulturpoolError as e:
        log.warning("Failed to generate summary for index %d: %s", index, e)
        row.error = f"Failed to generate summary: {e}"
    return row


def summarize_all(documents: List[Document], summarizer, workers: int = WORKERS) -> List[SummaryRow]:
    """Summarize concurrently; rows come back in search order."""
    rows = [None] * len(documents)  # type: List[Optional[SummaryRow]]
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        futures = {
            pool.submit(summarize_document, i, doc, summarizer): i
            for i, doc in enumerate(documents)
        }
        for future in as_completed(futures):
            row = future.result()
            rows[row.index] = row
    return [r for r in rows if r is not None]


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def format_row(row: SummaryRow) -> str:
    lines = [f"{row.index + 1:>2}. {row.title}", f"    Creator: {row.creator}"]
    if row.subject:
        lines.append(f"    Subject: {row.subject}")
    if row.document.date:
        lines.append(f"    Date: {row.document.date}")
    if row.document.is_shown_at:
        lines.append(f"    {row.document.is_shown_at}")
    lines.append(f"    {row.summary if row.summary is not None else row.error}")
    return "\n".join(lines)


def render_html(rows: List[SummaryRow], query: str) -> str:
    esc = html.escape
    body = []
    for row in rows:
        doc = row.document
        img = (f'<img class="preview-image" src="{esc(doc.preview_image)}" alt="{esc(row.title)}">'
               if doc.preview_image else '<div class="image-placeholder">No image available</div>')
        if doc.is_shown_at:
            img = f'<a href="{esc(doc.is_shown_at)}" target="_blank" rel="noopener noreferrer">{img}</a>'
        info = [f"<h4>{esc(row.title)}</h4>",
                f"<p><strong>Creator:</strong> {esc(row.creator)}</p>"]
        if row.subject:
            info.append(f"<p><strong>Subject:</strong> {esc(row.subject)}</p>")
        if doc.date:
            info.append(f"<p><strong>Date:</strong> {esc(doc.date)}</p>")
        if doc.is_shown_at:
            info.append(f'<a href="{esc(doc.is_shown_at)}" target="_blank" '
                        f'class="object-link">View full details →</a>')
        if row.summary is not None:
            summary = f'<div class="summary-content">{esc(row.summary)}</div>'
        else:
            summary = f'<div class="summary-error">{esc(row.error or "")}</div>'
        body.append(f"<tr><td>{img}</td><td class=\"object-info\">{''.join(info)}</td>"
                    f"<td>{summary}</td></tr>")

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{esc(query)} — Cultural Heritage Search</title>
<style>
  body {{ font-family: system-ui, sans-serif; margin: 2rem; color: #222; }}
  table {{ border-collapse: collapse; width: 100%; }}
  td {{ vertical-align: top; padding: 12px; border-bottom: 1px solid #ddd; }}
  .preview-image {{ max-width: 400px; max-height: 400px; }}
  .summary-error {{ color: #b00; }}
</style>
</head>
<body>
<h1>Found {len(rows)} objects for "{esc(query)}"</h1>
<table>
<thead><tr><th>Preview</th><th>Object</th><th>AI Summary</th></tr></thead>
<tbody>
{chr(10).join(body)}
</tbody>
</table>
</body>
</html>
"""


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Search Kulturpool with AI summaries")
    parser.add_argument("query", help="Search term")
    parser.add_argument("--backend", choices=sorted(BACKENDS), default=OpenRouterSummarizer.name)
    parser.add_argument("--model", default=None, help="Override the backend's model id")
    parser.add_argument("--workers", type=int, default=WORKERS)
    parser.add_argument("--html", type=Path, default=None, help="Also write an HTML report")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s  %(levelname)-7s  %(message)s")

    summarizer = make_summarizer(args.backend, model=args.model)
    if not summarizer.configured:
        log.warning("%s API key not set; summaries will show as not configured", args.backend)

    try:
        documents = search_objects(args.query)
    except ValueError as e:
        print(e, file=sys.stderr)
        return 2
    except KulturpoolError as e:
        print(f"Search failed: {e}", file=sys.stderr)
        return 1

    if not documents:
        print(f'No results found for "{args.query.strip()}".')
        return 0

    print(f'Found {len(documents)} objects for "{args.query.strip()}"\n')
    rows = summarize_all(documents, summarizer, workers=args.workers)
    for row in rows:
        print(format_row(row))
        print()

    if args.html:
        try:
            args.html.parent.mkdir(parents=True, exist_ok=True)
            args.html.write_text(render_html(rows, args.query.strip()), encoding="utf-8")
        except OSError as e:
            print(f"Could not write report: {e}", file=sys.stderr)
            return 1
        print(f"  → {args.html}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
