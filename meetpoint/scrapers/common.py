"""Shared utilities for list source fetchers."""

from pathlib import Path
from typing import Protocol

import httpx

from ..logger import get_logger
from ..models import SourceBatch

logger = get_logger()

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
    "Accept-Language": "en-GB,en;q=0.8",
}


class FetchFailure(Exception):
    """A single attempt to fetch a list source failed."""

    def __init__(self, message: str, source: str, error_type: str = "FetchFailure"):
        super().__init__(message)
        self.source = source
        self.error_type = error_type


class SourceFetcher(Protocol):
    """Anything that turns a source descriptor into a SourceBatch."""

    async def fetch(self, source: str) -> SourceBatch:
        ...


def is_remote(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


async def fetch_page(client: httpx.AsyncClient, url: str) -> str:
    """Fetch a page and return its text.

    Raises:
        FetchFailure: On any HTTP error status, timeout, or transport failure
    """
    try:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.text
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        logger.warning("List page request failed", url=url, status=status)
        raise FetchFailure(f"Request failed ({status}): {url}", url, f"HTTPError_{status}") from e
    except httpx.TimeoutException as e:
        logger.warning("List page request timed out", url=url)
        raise FetchFailure(f"Request timed out: {url}", url, "Timeout") from e
    except httpx.HTTPError as e:
        logger.error("List page request error", url=url, error=str(e))
        raise FetchFailure(f"Request error: {e}", url, "RequestError") from e


def read_page(path: str) -> str:
    """Read a saved page from disk.

    Raises:
        FetchFailure: If the file is missing or unreadable
    """
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Saved list page unreadable", path=path, error=str(e))
        raise FetchFailure(f"Cannot read {path}: {e}", path, "FileError") from e
