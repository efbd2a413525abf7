"""Scrape tool — fetch a web page, extract its text, and summarize it."""

from __future__ import annotations

import logging
import re
from typing import ClassVar

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from toolbot.errors import ToolArgumentError, TransportError
from toolbot.llm.message import Message
from toolbot.llm.provider import ModelTransport
from toolbot.tool.base import BaseTool, ToolError, ToolOk, ToolResult

logger = logging.getLogger(__name__)

SCRAPE_TIMEOUT = 30.0
MAX_CONTENT_CHARS = 50_000  # sent to the summarizer
FALLBACK_CHARS = 2000
USER_AGENT = "Mozilla/5.0 (compatible; toolbot/0.1)"

SUMMARY_PROMPT = """\
Summarize the main topics and ideas from this webpage in 2-3 concise bullet points.

URL: {url}

Content:
{text}

Provide only the summary, no preamble:"""

_DROP_TAGS = ["script", "style", "noscript"]
_CHROME_TAGS = ["nav", "footer", "header", "aside"]
_WS_RE = re.compile(r"\s+")


def extract_text(html: str) -> str:
    """Visible text of an HTML document with whitespace collapsed.

    Scripts and page chrome are dropped. A chrome element that wraps the
    main content (usually an unclosed ``<header>``) is unwrapped instead.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_DROP_TAGS):
        tag.decompose()
    for tag in soup.find_all(_CHROME_TAGS):
        if tag.decomposed:
            continue
        if tag.find(["main", "article"]) is not None:
            tag.unwrap()
        else:
            tag.decompose()
    return _WS_RE.sub(" ", soup.get_text(" ", strip=True)).strip()


class ScrapeParams(BaseModel):
    url: str = Field(description="The URL of the webpage to scrape and summarize")


class ScrapeTool(BaseTool[ScrapeParams]):
    """Fetch a page and have the model summarize it.

    If summarization fails the extracted text is returned instead, so the
    conversation still gets something useful.
    """

    name: ClassVar[str] = "scrape"
    description: ClassVar[str] = (
        "Scrape a website and summarize its main content.\n\n"
        "Input: A URL\n"
        "Output: A concise summary of the main topics/ideas on the page\n\n"
        "Use this to quickly understand what a webpage is about without reading the whole thing."
    )
    param_model: ClassVar[type[BaseModel]] = ScrapeParams

    def __init__(
        self,
        summarizer: ModelTransport,
        timeout: float = SCRAPE_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._summarizer = summarizer
        self._timeout = timeout
        self._transport = transport

    async def execute(self, params: ScrapeParams) -> ToolResult:
        url = params.url.strip()
        if not url:
            raise ToolArgumentError("url is required")
        if not url.startswith(("http://", "https://")):
            url = "https://" + url

        logger.info("Fetching %s", url)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            return ToolError(output=f"Error fetching {url}: {e}")

        if response.status_code != 200:
            return ToolError(
                output=f"HTTP {response.status_code}: {response.reason_phrase}"
            )

        logger.info("Fetched %d bytes", len(response.content))

        text = extract_text(response.text)
        if not text:
            return ToolOk(output="Could not extract text content from the page.")

        logger.info("Extracted %d chars of text", len(text))
        if len(text) > MAX_CONTENT_CHARS:
            text = text[:MAX_CONTENT_CHARS] + "..."

        try:
            summary = await self._summarize(text, url)
        except TransportError as e:
            logger.warning("Summarization failed: %s", e)
            return ToolOk(
                output=(
                    "Failed to summarize, here's the extracted text:\n\n"
                    + _shorten(text, FALLBACK_CHARS)
                )
            )

        logger.info("Summary: %s", _shorten(summary, 100))
        return ToolOk(output=summary)

    async def _summarize(self, text: str, url: str) -> str:
        prompt = SUMMARY_PROMPT.format(url=url, text=text)
        result = await self._summarizer.complete([Message.user(prompt)])
        summary = result.message.text.strip()
        if not summary:
            raise TransportError("summarizer returned an empty response")
        return summary


def _shorten(s: str, max_len: int) -> str:
    if len(s) <= max_len:
        return s
    return s[:max_len] + "..."
