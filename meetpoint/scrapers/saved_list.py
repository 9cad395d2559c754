"""
Fetcher for saved place lists rendered to HTML.

Driving a browser to render and scroll the list is left to whatever
produces the HTML (a headless browser dump, a saved page). This module
only reads the rendered markup: the list title from the first <h1>, and
one entry per place card with its name and closed status.
"""

from typing import List, Optional, Tuple

import httpx
from bs4 import BeautifulSoup

from ..models import Observation, SourceBatch
from .common import DEFAULT_HEADERS, FetchFailure, fetch_page, is_remote, read_page

PLACE_CARD_SELECTOR = ".BsJqK.xgHk6"
PLACE_NAME_SELECTOR = ".fontHeadlineSmall.rZF81c"
PLACE_STATUS_SELECTOR = ".IIrLbb"
CLOSED_MARKER = "Permanently closed"


def parse(html: str) -> Tuple[Optional[str], List[Observation]]:
    """Parse a rendered list page into (list title, observations)."""
    soup = BeautifulSoup(html, "html.parser")

    title = None
    h1 = soup.find("h1")
    if h1 and h1.get_text(strip=True):
        title = h1.get_text(strip=True)

    entries: List[Observation] = []
    for card in soup.select(PLACE_CARD_SELECTOR):
        name_el = card.select_one(PLACE_NAME_SELECTOR)
        name = name_el.get_text(strip=True) if name_el else ""
        if not name:
            continue
        status_el = card.select_one(PLACE_STATUS_SELECTOR)
        closed = bool(status_el and CLOSED_MARKER in status_el.get_text())
        entries.append(Observation(name, closed))
    return title, entries


class SavedListFetcher:
    """Fetch a list from a URL or a local HTML file."""

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client

    async def fetch(self, source: str) -> SourceBatch:
        if is_remote(source):
            html = await self._fetch_remote(source)
        else:
            html = read_page(source)

        title, entries = parse(html)
        if not title:
            raise FetchFailure(f"No list title found: {source}", source, "MissingTitle")
        return SourceBatch(list_label=title, entries=entries)

    async def _fetch_remote(self, url: str) -> str:
        if self._client is not None:
            return await fetch_page(self._client, url)
        async with httpx.AsyncClient(
            timeout=self.timeout, headers=DEFAULT_HEADERS, follow_redirects=True
        ) as client:
            return await fetch_page(client, url)
