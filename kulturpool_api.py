#!/usr/bin/env python3
"""
kulturpool_api.py — Shared client for the Kulturpool search API.

All demo scripts go through this module: it builds search URLs, performs the
HTTP requests, and validates the loosely shaped JSON documents into explicit
`Document` records so the rest of the code never has to guess at field types.

Search endpoint contract:
    GET {BASE_URL}?q=...&sort_by=...&page=...&per_page=...&filter_by=...
    -> {"found": int, "hits": [{"document": {...}}, ...]}
"""
from __future__ import annotations

import http.client
import json
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

BASE_URL = os.environ.get("KULTURPOOL_API_URL", "https://api.kulturpool.at/search/")
RANDOM_SORT = "_rand():asc"
DEFAULT_TIMEOUT = 30.0
USER_AGENT = "kulturpool-demos/0.1"

# 2026-01-01T00:00:00Z; anything dated before it has a dateMin
DATE_MIN_CUTOFF = 1767225600

log = logging.getLogger("kulturpool.api")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class KulturpoolError(RuntimeError):
    """Base error for remote calls; also raised for plain network failures."""


class ApiHttpError(KulturpoolError):
    def __init__(self, status: int, message: str = "", body: Any = None):
        self.status = status
        self.body = body
        super().__init__(message or f"HTTP error! status: {status}")


class MalformedResponseError(KulturpoolError):
    """Response arrived but is missing fields we depend on."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None]
    return [str(value)]


def _first_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        for v in value:
            if v is not None:
                return str(v)
        return None
    return str(value)


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        return None
    return value


def _opt_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class Document:
    """One cultural-heritage record from the search API.

    Every field except the tag lists is optional; the API omits whatever a
    provider did not supply. `title` is the first entry when the API sends a
    list. `raw` keeps the original mapping for anything not modelled here.
    """
    id: Optional[str] = None
    title: Optional[str] = None
    preview_image: Optional[str] = None
    is_shown_at: Optional[str] = None
    is_shown_by: Optional[str] = None
    full_view_metadata: Optional[str] = None
    creator: List[str] = field(default_factory=list)
    subject: List[str] = field(default_factory=list)
    medium: List[str] = field(default_factory=list)
    date: Optional[str] = None
    date_min: Optional[int] = None
    edm_type: Optional[str] = None
    data_provider: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, doc: Any) -> "Document":
        if not isinstance(doc, dict):
            raise MalformedResponseError(
                f"Expected document object, got {type(doc).__name__}")
        return cls(
            id=_first_str(doc.get("id")),
            title=_first_str(doc.get("title")),
            preview_image=_opt_str(doc.get("previewImage")),
            is_shown_at=_opt_str(doc.get("isShownAt")),
            is_shown_by=_opt_str(doc.get("isShownBy")),
            full_view_metadata=_opt_str(doc.get("fullViewMetadata")),
            creator=_as_list(doc.get("creator")),
            subject=_as_list(doc.get("subject")),
            medium=_as_list(doc.get("medium")),
            date=_first_str(doc.get("date")),
            date_min=_opt_int(doc.get("dateMin")),
            edm_type=_first_str(doc.get("edmType")),
            data_provider=_first_str(doc.get("dataProvider")),
            raw=doc,
        )

    @property
    def has_http_preview(self) -> bool:
        """Usable for image demos: http(s) preview plus a detail page."""
        return bool(self.preview_image
                    and self.preview_image.startswith("http")
                    and self.is_shown_at)


@dataclass
class SearchResult:
    found: int
    documents: List[Document]


# ---------------------------------------------------------------------------
# Query building
# ---------------------------------------------------------------------------

def filter_eq(name: str, value: str) -> str:
    return f"{name}:={value}"


def filter_lt(name: str, value: int) -> str:
    return f"{name}:<{value}"


def filter_all(*clauses: str) -> str:
    return " && ".join(c for c in clauses if c)


@dataclass
class SearchQuery:
    """Parameters for one search request. Unset (None) fields are omitted."""
    q: str = "*"
    sort_by: Optional[str] = None
    page: Optional[int] = None
    per_page: Optional[int] = None
    max_facet_values: Optional[int] = None
    highlight_full_fields: Optional[str] = None
    use_cache: Optional[bool] = None
    filter_by: Optional[str] = None

    def params(self) -> Dict[str, str]:
        params = {"q": self.q}
        if self.sort_by is not None:
            params["sort_by"] = self.sort_by
        if self.page is not None:
            params["page"] = str(self.page)
        if self.per_page is not None:
            params["per_page"] = str(self.per_page)
        if self.max_facet_values is not None:
            params["max_facet_values"] = str(self.max_facet_values)
        if self.highlight_full_fields is not None:
            params["highlight_full_fields"] = self.highlight_full_fields
        if self.use_cache is not None:
            params["use_cache"] = "true" if self.use_cache else "false"
        if self.filter_by is not None:
            params["filter_by"] = self.filter_by
        return params

    def url(self, base_url: Optional[str] = None) -> str:
        return f"{base_url or BASE_URL}?{urllib.parse.urlencode(self.params())}"


def random_images_query(q: str = "*", per_page: int = 100, page: int = 1) -> SearchQuery:
    """Random-order IMAGE records; shared by the mosaic and slideshow demos."""
    return SearchQuery(
        q=q,
        sort_by=RANDOM_SORT,
        page=page,
        per_page=per_page,
        max_facet_values=1,
        use_cache=False,
        filter_by=filter_eq("edmType", "IMAGE"),
    )


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def _error_body(err: urllib.error.HTTPError) -> Any:
    """Decoded JSON error payload, or None when the body is empty or not JSON."""
    try:
        return json.loads(err.read() or b"null")
    except (OSError, ValueError):
        return None


def get_json(url: str, data: Optional[bytes] = None,
             headers: Optional[Dict[str, str]] = None,
             timeout: float = DEFAULT_TIMEOUT) -> Any:
    """GET (or POST when `data` is set) and decode a JSON body.

    Raises ApiHttpError on non-2xx, KulturpoolError on network failure
    (including a connection dropped while reading the body) and
    MalformedResponseError when the body is not JSON.
    """
    req_headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
    if headers:
        req_headers.update(headers)
    req = urllib.request.Request(url, data=data, headers=req_headers)
    log.debug("%s %s", "POST" if data is not None else "GET", url)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            body = resp.read()
    except urllib.error.HTTPError as e:
        raise ApiHttpError(e.code, body=_error_body(e)) from e
    except urllib.error.URLError as e:
        raise KulturpoolError(f"Network error: {e.reason}") from e
    except TimeoutError as e:
        raise KulturpoolError(f"Timed out after {timeout:.0f}s: {url}") from e
    except (OSError, http.client.HTTPException) as e:
        raise KulturpoolError(f"Network error: {e!r}") from e

    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedResponseError(f"Invalid JSON from {url}: {e}") from e


def parse_search_response(data: Any) -> SearchResult:
    if not isinstance(data, dict) or not isinstance(data.get("hits"), list):
        raise MalformedResponseError("Invalid API response format")
    docs = []
    for hit in data["hits"]:
        if not isinstance(hit, dict) or "document" not in hit:
            log.warning("Skipping hit without document")
            continue
        docs.append(Document.from_dict(hit["document"]))
    found = _opt_int(data.get("found"))
    return SearchResult(found=found if found is not None else len(docs), documents=docs)


def search(query: SearchQuery, timeout: float = DEFAULT_TIMEOUT) -> SearchResult:
    return parse_search_response(get_json(query.url(), timeout=timeout))


def fetch_until(query: SearchQuery, minimum: int, max_pages: int = 50,
                timeout: float = DEFAULT_TIMEOUT) -> List[Document]:
    """Page through results until at least `minimum` documents are collected.

    Stops early when the API runs dry (a short or empty page) or after
    `max_pages` requests.
    """
    collected = []  # type: List[Document]
    page = query.page or 1
    per_page = query.per_page or 50
    for _ in range(max_pages):
        paged = replace(query, page=page, per_page=per_page)
        result = search(paged, timeout=timeout)
        if page == (query.page or 1):
            log.info("Search reports %d results", result.found)
        collected.extend(result.documents)
        if len(collected) >= minimum or len(result.documents) < per_page:
            break
        page += 1
    return collected


def fetch_metadata(url: str, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    data = get_json(url, timeout=timeout)
    if not isinstance(data, dict):
        raise MalformedResponseError("Metadata response is not an object")
    return data


def aggregated_cho(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Extract metadata.aggregatedCHO, the object description used for summaries."""
    inner = metadata.get("metadata")
    if not isinstance(inner, dict) or not inner.get("aggregatedCHO"):
        raise MalformedResponseError("No aggregatedCHO metadata found")
    return inner["aggregatedCHO"]


def with_http_previews(documents: Iterable[Document], limit: Optional[int] = None) -> List[Document]:
    kept = [d for d in documents if d.has_http_preview]
    return kept[:limit] if limit is not None else kept
