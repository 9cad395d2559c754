"""
Concurrent, retrying fetch of all list sources.

Each source is fetched in its own task under a shared semaphore. A source
that keeps failing degrades to an empty batch labelled with its descriptor;
it never cancels or fails its siblings. Batches come back in source order.
"""

import asyncio
from typing import List, Sequence

from .config import DEFAULT_FETCH_CONCURRENCY, DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_DELAY
from .logger import get_logger
from .models import SourceBatch
from .retry import RetryError, retry_async
from .scrapers.common import FetchFailure, SourceFetcher

logger = get_logger()


class FetchOrchestrator:
    def __init__(self, fetcher: SourceFetcher):
        self.fetcher = fetcher

    async def run(
        self,
        sources: Sequence[str],
        concurrency_cap: int = DEFAULT_FETCH_CONCURRENCY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> List[SourceBatch]:
        """
        Fetch every source and return one batch per source, in input order.

        Args:
            sources: Source descriptors handed to the fetcher
            concurrency_cap: Maximum fetches in flight (1 = sequential)
            max_attempts: Attempts per source before giving up
            retry_delay: Fixed delay in seconds between attempts
        """
        if concurrency_cap < 1:
            raise ValueError("concurrency_cap must be >= 1")
        semaphore = asyncio.Semaphore(concurrency_cap)
        logger.info(
            f"Fetching {len(sources)} sources",
            concurrency=concurrency_cap,
            max_attempts=max_attempts,
        )
        tasks = [
            self._fetch_source(source, semaphore, max_attempts, retry_delay)
            for source in sources
        ]
        return list(await asyncio.gather(*tasks))

    async def _fetch_source(
        self,
        source: str,
        semaphore: asyncio.Semaphore,
        max_attempts: int,
        retry_delay: float,
    ) -> SourceBatch:
        attempt = 0

        async def attempt_once() -> SourceBatch:
            nonlocal attempt
            attempt += 1
            # The slot is released while waiting between attempts.
            async with semaphore:
                logger.record_fetch_attempt(source)
                logger.info("Fetching source", source=source, attempt=attempt)
                try:
                    batch = await self.fetcher.fetch(source)
                except Exception as e:
                    error_type = e.error_type if isinstance(e, FetchFailure) else type(e).__name__
                    logger.record_fetch_failure(source, error_type)
                    logger.warning(
                        "Fetch attempt failed",
                        source=source,
                        attempt=attempt,
                        error_type=error_type,
                        error=str(e),
                    )
                    raise
            logger.record_fetch_success(source)
            logger.info(
                f"Fetched list '{batch.list_label}'",
                source=source,
                attempt=attempt,
                places=len(batch.entries),
            )
            return batch

        def log_retry(failed_attempt: int, error: BaseException, delay: float) -> None:
            logger.info(
                f"Retrying source in {delay:g}s",
                source=source,
                failed_attempt=failed_attempt,
                next_attempt=failed_attempt + 1,
            )

        try:
            return await retry_async(
                attempt_once,
                max_attempts=max_attempts,
                delay=retry_delay,
                on_retry=log_retry,
            )
        except RetryError as e:
            logger.error(
                "Source failed after all attempts, using empty batch",
                source=source,
                attempts=e.attempts,
                error=str(e.__cause__),
            )
            return SourceBatch(list_label=source, entries=[])
