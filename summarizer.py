#!/usr/bin/env python3
"""
summarizer.py — Three-sentence LLM summaries of cultural heritage objects.

The prompt is built from the object's aggregatedCHO metadata (pretty-printed
JSON, cut to 4000 chars). Two backends share it:

    OpenRouterSummarizer   POST /chat/completions with a bearer key (default)
    GeminiSummarizer       google-genai generate_content

Keys come from the environment. OPENROUTER_API_KEY defaults to a placeholder,
and `configured` stays False until it is replaced.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from kulturpool_api import ApiHttpError, KulturpoolError, get_json

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

PLACEHOLDER_KEY = "YOUR_OPENROUTER_API_KEY"
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
OPENROUTER_API_KEY = os.environ.get("OPENROUTER_API_KEY", PLACEHOLDER_KEY)
OPENROUTER_MODEL = os.environ.get("OPENROUTER_MODEL", "deepseek/deepseek-chat-v3.1:free")
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")

APP_TITLE = "Cultural Heritage Search"
APP_REFERER = "https://github.com/kulturpool-demos"
MAX_TOKENS = 200
TEMPERATURE = 0.7
PROMPT_CHARS = 4000
SUMMARY_TIMEOUT = 60.0

PROMPT_PREFIX = ("Please explain this cultural heritage object in 3 simple sentences "
                 "based on the following metadata:\n\n")

log = logging.getLogger("kulturpool.summary")


class SummaryError(KulturpoolError):
    pass


def build_prompt(cho: Dict[str, Any]) -> str:
    metadata = json.dumps(cho, indent=2, ensure_ascii=False)
    return f"{PROMPT_PREFIX}{metadata[:PROMPT_CHARS]}..."


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class OpenRouterSummarizer:
    name = "openrouter"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 url: str = OPENROUTER_URL, referer: str = APP_REFERER,
                 timeout: float = SUMMARY_TIMEOUT):
        self.api_key = api_key if api_key is not None else OPENROUTER_API_KEY
        self.model = model or OPENROUTER_MODEL
        self.url = url
        self.referer = referer
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key) and self.api_key != PLACEHOLDER_KEY

    def request_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        }

    def summarize(self, cho: Dict[str, Any]) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": APP_TITLE,
        }
        payload = json.dumps(self.request_body(build_prompt(cho))).encode("utf-8")
        try:
            data = get_json(self.url, data=payload, headers=headers, timeout=self.timeout)
        except ApiHttpError as e:
            message = None
            if isinstance(e.body, dict) and isinstance(e.body.get("error"), dict):
                message = e.body["error"].get("message")
            raise SummaryError(message or f"OpenRouter API error: {e.status}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise SummaryError("Invalid OpenRouter response format") from e
        if not isinstance(content, str):
            raise SummaryError("Invalid OpenRouter response format")
        return content.strip()


class GeminiSummarizer:
    name = "gemini"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 client: Optional[genai.Client] = None):
        self.api_key = api_key if api_key is not None else GEMINI_API_KEY
        self.model = model or GEMINI_MODEL
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def summarize(self, cho: Dict[str, Any]) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=build_prompt(cho),
                config=types.GenerateContentConfig(
                    max_output_tokens=MAX_TOKENS,
                    temperature=TEMPERATURE,
                ),
            )
        except genai_errors.APIError as e:
            raise SummaryError(e.message or f"Gemini API error: {e.code}") from e
        except (httpx.HTTPError, OSError) as e:
            raise SummaryError(f"Gemini request failed: {e!r}") from e
        text = response.text
        if not text:
            raise SummaryError("Empty Gemini response")
        return text.strip()


BACKENDS = {
    OpenRouterSummarizer.name: OpenRouterSummarizer,
    GeminiSummarizer.name: GeminiSummarizer,
}


def make_summarizer(backend: str = OpenRouterSummarizer.name, **kwargs):
    try:
        cls = BACKENDS[backend]
    except KeyError:
        raise ValueError(f"Unknown summarizer backend: {backend}") from None
    return cls(**kwargs)
