# providers.py
import asyncio
from typing import Any, Awaitable, List, Optional, TypeVar

import httpx
from loguru import logger

from config import HN_BASE, Settings
from errors import (
    ItemNotFound,
    OperationCancelled,
    UpstreamMalformed,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from mappers import map_hn_item, map_id_listing
from models import Item

T = TypeVar("T")


def new_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Shared pooled client; one per process."""
    return httpx.AsyncClient(
        timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        headers={"User-Agent": settings.USER_AGENT, "Accept": "application/json"},
        follow_redirects=True,
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=settings.MAX_CONCURRENCY),
        transport=transport,
    )


async def until_cancelled(aw: Awaitable[T], cancel: Optional[asyncio.Event], what: str = "request") -> T:
    """Await ``aw`` unless ``cancel`` fires first, in which case the work is aborted.

    Raises OperationCancelled when the signal wins the race.
    """
    if cancel is None:
        return await aw
    task = asyncio.ensure_future(aw)
    if cancel.is_set():
        task.cancel()
        raise OperationCancelled(what)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
    if task in done:
        return task.result()
    raise OperationCancelled(what)


class HackerNewsProvider:
    """
    Thin async client around the Hacker News Firebase API.
    Docs: https://github.com/HackerNews/API
    """

    def __init__(self, client: httpx.AsyncClient, base: str = HN_BASE):
        self.client = client
        self.base = base.rstrip("/")

    async def _get(self, path: str) -> httpx.Response:
        url = f"{self.base}{path}"
        try:
            return await self.client.get(url)
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(url, type(e).__name__) from e
        except httpx.DecodingError as e:
            raise UpstreamMalformed(url, f"undecodable body: {e}") from e
        except httpx.RequestError as e:
            raise UpstreamUnavailable(url, f"{type(e).__name__}: {e}") from e

    @staticmethod
    def _json(r: httpx.Response) -> Any:
        try:
            return r.json()
        except ValueError as e:
            ct = r.headers.get("content-type", "")
            raise UpstreamMalformed(str(r.url), f"non-JSON body ct={ct}: {r.text[:200]}") from e

    async def list_ids(self, cancel: Optional[asyncio.Event] = None) -> List[int]:
        """Newest item ids, most-recent-first."""
        r = await until_cancelled(self._get("/newstories.json"), cancel, "listing fetch")
        if not r.is_success:
            raise UpstreamUnavailable(str(r.url), f"status {r.status_code}")
        try:
            return map_id_listing(self._json(r))
        except ValueError as e:
            raise UpstreamMalformed(str(r.url), str(e)) from e

    async def fetch_item(self, item_id: int, cancel: Optional[asyncio.Event] = None) -> Item:
        r = await until_cancelled(self._get(f"/item/{item_id}.json"), cancel, f"item {item_id} fetch")
        if not r.is_success:
            logger.warning(f"item {item_id} fetch returned status {r.status_code}")
            raise ItemNotFound(item_id)
        data = self._json(r)
        # unknown ids come back as a 200 with a null body
        if data is None:
            raise ItemNotFound(item_id)
        try:
            return map_hn_item(data)
        except ValueError as e:
            raise UpstreamMalformed(str(r.url), str(e)) from e
