# service.py
"""
Aggregation layer between the HTTP boundary and the Hacker News API.

- paginate(): pure slicing of the id listing
- FetchCoordinator: cache-first, bounded concurrent item resolution, input order kept
- StoryService: listing refresh (single-flight), newest page, by-id, substring search
"""
from __future__ import annotations

import asyncio
import math
from typing import List, Optional, Sequence

from loguru import logger

from cache import TTLCache
from errors import ItemNotFound, UpstreamError, UpstreamMalformed
from models import FetchOutcome, Found, Item, NotFound, PageResult, PageSlice, Resolution, TransientError
from providers import HackerNewsProvider, until_cancelled

LISTING_KEY = "listing"


def item_key(item_id: int) -> str:
    return f"item:{item_id}"


# ------------------ Pagination ------------------
def paginate(listing: Sequence[int], page: int, page_size: int) -> PageSlice:
    """Slice ``listing`` for a 1-based ``page``. Out-of-range pages are empty, not errors."""
    if page < 1:
        raise ValueError("page must be >= 1")
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    total = len(listing)
    start = (page - 1) * page_size
    return PageSlice(
        ids=list(listing[start:start + page_size]),
        total_count=total,
        total_pages=math.ceil(total / page_size),
    )


def matches(item: Item, needle: str) -> bool:
    """Case-insensitive containment on title or author; ``needle`` is already lowercased."""
    return needle in item.title.lower() or needle in item.by.lower()


# ------------------ Fan-out / fan-in ------------------
class FetchCoordinator:
    def __init__(
        self,
        cache: TTLCache,
        provider: HackerNewsProvider,
        item_ttl: float = 1800,
        max_concurrency: int = 100,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.cache = cache
        self.provider = provider
        self.item_ttl = item_ttl
        self.max_concurrency = max_concurrency

    async def fetch_one(self, item_id: int) -> FetchOutcome:
        cached = self.cache.get(item_key(item_id))
        if cached is not None:
            return Found(cached)
        try:
            item = await self.provider.fetch_item(item_id)
        except (ItemNotFound, UpstreamMalformed) as e:
            logger.debug(f"item {item_id} dropped: {e}")
            return NotFound(item_id)
        except UpstreamError as e:
            logger.warning(f"item {item_id} fetch failed: {e}")
            return TransientError(item_id, e)
        except Exception as e:
            # item failures never fail the request
            logger.opt(exception=e).warning(f"item {item_id} fetch failed unexpectedly")
            return TransientError(item_id, e)
        self.cache.set(item_key(item_id), item, ttl=self.item_ttl)
        return Found(item)

    async def resolve(self, ids: Sequence[int], cancel: Optional[asyncio.Event] = None) -> Resolution:
        """Resolve ``ids`` concurrently; the result keeps input order and drops misses.

        If ``cancel`` fires, in-flight fetches are aborted and the items collected
        so far are returned with ``cancelled=True``.
        """
        if not ids:
            return Resolution()
        if cancel is not None and cancel.is_set():
            return Resolution(cancelled=True)

        slots: List[Optional[Item]] = [None] * len(ids)
        sem = asyncio.Semaphore(min(len(ids), self.max_concurrency))

        async def _one(index: int, item_id: int) -> None:
            async with sem:
                outcome = await self.fetch_one(item_id)
            if isinstance(outcome, Found):
                slots[index] = outcome.item

        pending = {asyncio.ensure_future(_one(i, item_id)) for i, item_id in enumerate(ids)}
        waiter = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        cancelled = False
        try:
            while pending:
                watch = pending | {waiter} if waiter is not None else pending
                done, _ = await asyncio.wait(watch, return_when=asyncio.FIRST_COMPLETED)
                pending -= done
                if waiter is not None and waiter in done:
                    cancelled = bool(pending)
                    break
        finally:
            if waiter is not None:
                waiter.cancel()
            for t in pending:
                t.cancel()

        items = [it for it in slots if it is not None]
        if cancelled:
            logger.info(f"batch cancelled collected={len(items)} requested={len(ids)}")
        return Resolution(items=items, cancelled=cancelled, dropped=len(ids) - len(items))


# ------------------ Service facade ------------------
class StoryService:
    def __init__(
        self,
        cache: TTLCache,
        provider: HackerNewsProvider,
        *,
        listing_ttl: float = 300,
        item_ttl: float = 1800,
        listing_weight: int = 10,
        search_multiplier: int = 2,
        max_concurrency: int = 100,
    ):
        self.cache = cache
        self.provider = provider
        self.listing_ttl = listing_ttl
        self.listing_weight = listing_weight
        self.search_multiplier = search_multiplier
        self.coordinator = FetchCoordinator(cache, provider, item_ttl=item_ttl, max_concurrency=max_concurrency)
        self._listing_lock = asyncio.Lock()

    async def listing(self, cancel: Optional[asyncio.Event] = None) -> List[int]:
        """Current id listing, refreshed through the cache.

        Concurrent misses wait for the one in-flight refresh instead of each
        calling upstream.
        """
        ids = self.cache.get(LISTING_KEY)
        if ids is not None:
            return ids
        async with self._listing_lock:
            ids = self.cache.get(LISTING_KEY)
            if ids is not None:
                return ids
            ids = await self.provider.list_ids(cancel)
            self.cache.set(LISTING_KEY, ids, ttl=self.listing_ttl, size=self.listing_weight)
            logger.info(f"listing refreshed count={len(ids)}")
            return ids

    async def newest(self, page: int = 1, page_size: int = 20, cancel: Optional[asyncio.Event] = None) -> PageResult:
        listing = await until_cancelled(self.listing(cancel), cancel, "listing fetch")
        sl = paginate(listing, page, page_size)
        res = await self.coordinator.resolve(sl.ids, cancel)
        return PageResult(
            stories=res.items,
            totalCount=sl.total_count,
            currentPage=page,
            totalPages=sl.total_pages,
            pageSize=page_size,
        )

    async def by_id(self, item_id: int, cancel: Optional[asyncio.Event] = None) -> Optional[Item]:
        outcome = await until_cancelled(self.coordinator.fetch_one(item_id), cancel, f"item {item_id} fetch")
        return outcome.item if isinstance(outcome, Found) else None

    async def search(self, query: str, limit: int = 50, cancel: Optional[asyncio.Event] = None) -> List[Item]:
        """Substring search over the newest ``limit * search_multiplier`` items.

        A blank query returns the first page of newest items instead.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if not query or not query.strip():
            return (await self.newest(page=1, page_size=limit, cancel=cancel)).stories
        listing = await until_cancelled(self.listing(cancel), cancel, "listing fetch")
        window = listing[: min(len(listing), limit * self.search_multiplier)]
        res = await self.coordinator.resolve(window, cancel)
        needle = query.lower()
        return [it for it in res.items if matches(it, needle)][:limit]
