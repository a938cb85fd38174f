"""Tests for the search + AI summary demo and its summarizer backends."""

import json
from unittest import mock
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

import automated_summaries
from conftest import fake_response
from automated_summaries import (
    MSG_NO_KEY,
    MSG_NO_METADATA,
    SummaryRow,
    build_search_url,
    format_row,
    render_html,
    search_objects,
    summarize_all,
    summarize_document,
)
from kulturpool_api import ApiHttpError, KulturpoolError, SearchResult
from summarizer import (
    PLACEHOLDER_KEY,
    PROMPT_PREFIX,
    GeminiSummarizer,
    OpenRouterSummarizer,
    SummaryError,
    build_prompt,
    make_summarizer,
)


class FakeSummarizer:
    configured = True

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = []

    def summarize(self, cho):
        self.calls.append(cho)
        if cho.get("title") == self.fail_on:
            raise SummaryError("quota exceeded")
        return f"About {cho['title']}."


class TestSearch:
    def test_search_url(self):
        params = parse_qs(urlsplit(build_search_url("Klimt")).query)
        assert params == {
            "q": ["Klimt"],
            "sort_by": ["_rand():asc"],
            "page": ["1"],
            "per_page": ["10"],
            "max_facet_values": ["1"],
            "highlight_full_fields": ["title,description,creator,subject"],
            "use_cache": ["false"],
            "filter_by": ["edmType:=IMAGE"],
        }

    def test_empty_query_rejected(self):
        with pytest.raises(ValueError):
            search_objects("   ")

    def test_keeps_hits_with_preview_and_metadata(self, make_doc):
        docs = [make_doc(full_view_metadata=f"https://meta.example/{i}") for i in range(12)]
        docs.insert(0, make_doc(full_view_metadata=None))
        docs.insert(1, make_doc(preview_image=None, full_view_metadata="https://meta.example/x"))
        with mock.patch.object(automated_summaries, "search",
                               return_value=SearchResult(found=14, documents=docs)):
            kept = search_objects("Donau")
        assert len(kept) == 10
        assert all(d.preview_image and d.full_view_metadata for d in kept)


class TestSummarizeDocument:
    def test_placeholder_key(self, make_doc):
        row = summarize_document(0, make_doc(), OpenRouterSummarizer(api_key=PLACEHOLDER_KEY))
        assert row.error == MSG_NO_KEY
        assert row.summary is None

    def test_missing_metadata_url(self, make_doc):
        row = summarize_document(0, make_doc(full_view_metadata=None), FakeSummarizer())
        assert row.error == MSG_NO_METADATA

    def test_success(self, make_doc):
        doc = make_doc(full_view_metadata="https://meta.example/1")
        meta = {"metadata": {"aggregatedCHO": {"title": "Kuss"}}}
        with mock.patch.object(automated_summaries, "fetch_metadata", return_value=meta):
            row = summarize_document(3, doc, FakeSummarizer())
        assert row.index == 3
        assert row.summary == "About Kuss."
        assert row.error is None

    def test_missing_aggregated_cho(self, make_doc):
        doc = make_doc(full_view_metadata="https://meta.example/1")
        with mock.patch.object(automated_summaries, "fetch_metadata", return_value={"metadata": {}}):
            row = summarize_document(0, doc, FakeSummarizer())
        assert row.error == "Failed to generate summary: No aggregatedCHO metadata found"

    def test_rows_fail_independently(self, make_doc):
        docs = [make_doc(full_view_metadata=f"https://meta.example/{i}") for i in range(4)]

        def fetch(url):
            i = url.rsplit("/", 1)[1]
            if i == "1":
                raise KulturpoolError("Network error: timed out")
            return {"metadata": {"aggregatedCHO": {"title": f"T{i}"}}}

        with mock.patch.object(automated_summaries, "fetch_metadata", side_effect=fetch):
            rows = summarize_all(docs, FakeSummarizer(fail_on="T2"), workers=3)
        assert [r.index for r in rows] == [0, 1, 2, 3]
        assert rows[0].summary == "About T0."
        assert rows[1].error == "Failed to generate summary: Network error: timed out"
        assert rows[2].error == "Failed to generate summary: quota exceeded"
        assert rows[3].summary == "About T3."

    def test_connection_reset_fails_only_that_row(self, make_doc):
        doc = make_doc(full_view_metadata="https://meta.example/1")
        resp = fake_response(raw=b"")
        resp.read.side_effect = ConnectionResetError("peer reset mid-body")
        with mock.patch("urllib.request.urlopen", return_value=resp):
            rows = summarize_all([doc], OpenRouterSummarizer(api_key="k"))
        assert len(rows) == 1
        assert rows[0].summary is None
        assert rows[0].error.startswith("Failed to generate summary: Network error")


class TestOutput:
    def test_defaults(self, make_doc):
        row = SummaryRow(0, make_doc(title=None), summary="s")
        assert row.title == "Untitled"
        assert row.creator == "Unknown creator"
        assert "Untitled" in format_row(row)

    def test_html_escapes(self, make_doc):
        doc = make_doc(title="<script>alert(1)</script>", creator=["A & B", "C"])
        rows = [SummaryRow(0, doc, summary="<b>bold</b>"), SummaryRow(1, make_doc(), error="x < y")]
        page = render_html(rows, 'Klimt "Kuss"')
        assert "<script>alert" not in page
        assert "&lt;script&gt;" in page
        assert "A &amp; B, C" in page
        assert "&lt;b&gt;bold&lt;/b&gt;" in page
        assert "x &lt; y" in page
        assert "Found 2 objects" in page


class TestPrompt:
    def test_truncated(self):
        cho = {"description": "x" * 10000}
        prompt = build_prompt(cho)
        assert prompt.startswith(PROMPT_PREFIX)
        assert prompt.endswith("...")
        assert len(prompt) == len(PROMPT_PREFIX) + 4000 + 3

    def test_pretty_printed(self):
        prompt = build_prompt({"title": "Kuss"})
        assert prompt == PROMPT_PREFIX + json.dumps({"title": "Kuss"}, indent=2) + "..."


class TestOpenRouter:
    def test_request(self):
        reply = {"choices": [{"message": {"content": "  Ein Gemälde.  "}}]}
        s = OpenRouterSummarizer(api_key="sk-test", model="some/model")
        with mock.patch("summarizer.get_json", return_value=reply) as m:
            assert s.summarize({"title": "Kuss"}) == "Ein Gemälde."
        url = m.call_args.args[0]
        kwargs = m.call_args.kwargs
        body = json.loads(kwargs["data"])
        assert url == "https://openrouter.ai/api/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["headers"]["X-Title"] == "Cultural Heritage Search"
        assert body["model"] == "some/model"
        assert body["max_tokens"] == 200
        assert body["temperature"] == 0.7
        assert body["messages"][0]["role"] == "user"

    def test_error_message_from_body(self):
        err = ApiHttpError(401, body={"error": {"message": "No auth credentials found"}})
        with mock.patch("summarizer.get_json", side_effect=err):
            with pytest.raises(SummaryError, match="No auth credentials found"):
                OpenRouterSummarizer(api_key="sk").summarize({})

    def test_error_falls_back_to_status(self):
        with mock.patch("summarizer.get_json", side_effect=ApiHttpError(502)):
            with pytest.raises(SummaryError, match="502"):
                OpenRouterSummarizer(api_key="sk").summarize({})

    def test_bad_reply(self):
        with mock.patch("summarizer.get_json", return_value={"choices": []}):
            with pytest.raises(SummaryError, match="Invalid OpenRouter response format"):
                OpenRouterSummarizer(api_key="sk").summarize({})

    def test_configured(self):
        assert not OpenRouterSummarizer(api_key=PLACEHOLDER_KEY).configured
        assert not OpenRouterSummarizer(api_key="").configured
        assert OpenRouterSummarizer(api_key="sk").configured


class TestGemini:
    def test_summarize(self):
        client = mock.MagicMock()
        client.models.generate_content.return_value.text = " Eine Vase. "
        s = GeminiSummarizer(model="gemini-test", client=client)
        assert s.configured
        assert s.summarize({"title": "Vase"}) == "Eine Vase."
        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-test"
        assert kwargs["contents"].startswith(PROMPT_PREFIX)

    def test_empty_reply(self):
        client = mock.MagicMock()
        client.models.generate_content.return_value.text = None
        with pytest.raises(SummaryError):
            GeminiSummarizer(client=client).summarize({})

    def test_transport_error(self):
        client = mock.MagicMock()
        client.models.generate_content.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(SummaryError, match="Gemini request failed"):
            GeminiSummarizer(client=client).summarize({})

    def test_timeout(self):
        client = mock.MagicMock()
        client.models.generate_content.side_effect = httpx.ReadTimeout("read timed out")
        with pytest.raises(SummaryError):
            GeminiSummarizer(client=client).summarize({})

    def test_factory(self):
        assert isinstance(make_summarizer("gemini", api_key="k"), GeminiSummarizer)
        with pytest.raises(ValueError):
            make_summarizer("nope")
