"""
Smart Fetch Tool Server
=======================

An MCP tool provider that reads web pages for the model.

Tools:
- smart_fetch(urls): fetch each page, keep only the main article and return
  it as Markdown with absolute links

Raw HTML is mostly navigation, scripts and ads. Readability picks out the
article body and markdownify turns it into text a model reads cheaply.

Pages that cannot be fetched, answer with an error status or have no
readable article are left out of the result.

Run with:
    python -m tinyagent.tools.smart_fetch

Or after installing:
    tinyagent-smart-fetch
"""

import asyncio
import sys
from dataclasses import dataclass

import httpx
from markdownify import markdownify
from mcp.server.fastmcp import FastMCP
from readability import Document
from readability.readability import Unparseable

from tinyagent.utils.logger import Logger, redirect_output

logger = Logger("SmartFetch")

FETCH_TIMEOUT_SECONDS = 30.0
USER_AGENT = "Mozilla/5.0 (compatible; TinyAgent smart-fetch)"

mcp = FastMCP("Smart fetch")


@dataclass
class FetchedPage:
    url: str
    title: str
    markdown: str

    def to_text(self) -> str:
        return f"# {self.title}\n\nSource: {self.url}\n\n{self.markdown}"


def extract_article(html: str, url: str) -> FetchedPage | None:
    """
    Reduce a page to its main article.

    Args:
        html: The page source
        url: Where it came from; relative links are resolved against it

    Returns:
        The article as Markdown, or None if nothing readable is left
    """
    if not html.strip():
        return None
    try:
        document = Document(html, url=url)
        content = document.summary(html_partial=True)
    except Unparseable as e:
        logger.warning(f"Could not parse {url}: {e}")
        return None

    markdown = markdownify(content, heading_style="ATX").strip()
    if not markdown:
        return None
    return FetchedPage(url=url, title=document.title(), markdown=markdown)


async def fetch_page(client: httpx.AsyncClient, url: str) -> FetchedPage | None:
    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        logger.error(f"Failed to fetch {url}", e)
        return None

    if response.status_code >= 400:
        logger.error(f"Fetching {url} returned HTTP {response.status_code}")
        return None

    # Links resolve against where redirects ended up
    return extract_article(response.text, str(response.url))


async def fetch_all(client: httpx.AsyncClient, urls: list[str]) -> list[FetchedPage]:
    """Fetch pages concurrently, keeping the readable ones in request order."""
    pages = await asyncio.gather(*(fetch_page(client, url) for url in urls))
    return [page for page in pages if page is not None]


@mcp.tool(name="smart_fetch")
async def smart_fetch(urls: list[str]) -> list[str]:
    """Fetch and extract clean, LLM-optimized text content from webpages given their URLs.

    Args:
        urls: List of webpage URLs to fetch and convert into clean, LLM-friendly text.
    """
    async with httpx.AsyncClient(
        follow_redirects=True,
        timeout=FETCH_TIMEOUT_SECONDS,
        headers={"User-Agent": USER_AGENT},
    ) as client:
        pages = await fetch_all(client, urls)

    logger.info(f"Fetched {len(pages)} of {len(urls)} pages")
    return [page.to_text() for page in pages]


def run():
    """Synchronous entry point for the tinyagent-smart-fetch command."""
    redirect_output(sys.stderr)
    logger.info("Starting smart fetch tool server on stdio")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    run()
