"""
Hacker News Stories Backend (FastAPI)

Goals
- Paginated "newest stories" view over the Hacker News API
- Case-insensitive title/author search over the newest window
- Shared httpx client with connection pooling
- Bounded in-memory TTL cache for the id listing and individual items
- Per-request deadline; client disconnects abort upstream work
- Fixed-window rate limit per Host header
- Useful debugging headers behind DEBUG_UPSTREAM

Run locally
  uvicorn main:app --host 0.0.0.0 --port 8080 --reload
"""
from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

import httpx
from fastapi import FastAPI, HTTPException, Path, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from cache import TTLCache
from config import Settings, configure_logging
from errors import OperationCancelled, UpstreamError, UpstreamTimeout
from models import CacheStats, HealthResponse, Item, PageResult
from providers import HackerNewsProvider, new_client
from ratelimit import FixedWindowRateLimiter
from service import StoryService

DISCONNECT_POLL_SECONDS = 0.5


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    S = settings or Settings()
    configure_logging(S)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = new_client(S, transport=transport)
        cache = TTLCache(
            ttl_seconds=S.ITEM_TTL_SECONDS,
            max_size=S.CACHE_MAX_ENTRIES,
            compaction=S.CACHE_COMPACTION_FRACTION,
        )
        app.state.client = client
        app.state.cache = cache
        app.state.service = StoryService(
            cache,
            HackerNewsProvider(client, S.HN_BASE),
            listing_ttl=S.LISTING_TTL_SECONDS,
            item_ttl=S.ITEM_TTL_SECONDS,
            listing_weight=S.LISTING_CACHE_WEIGHT,
            search_multiplier=S.SEARCH_FANOUT_MULTIPLIER,
            max_concurrency=S.MAX_CONCURRENCY,
        )
        logger.info(f"started upstream={S.HN_BASE} cache_limit={S.CACHE_MAX_ENTRIES}")
        try:
            yield
        finally:
            await client.aclose()

    app = FastAPI(title="Hacker News Stories Backend", version="1.0", lifespan=lifespan)
    app.state.settings = S
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=S.cors_origins,
        allow_credentials=S.cors_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ------------------ Rate limiting ------------------
    if S.RATE_LIMIT_PER_MINUTE > 0:
        limiter = FixedWindowRateLimiter(S.RATE_LIMIT_PER_MINUTE, S.RATE_LIMIT_WINDOW_SECONDS)
        app.state.limiter = limiter

        @app.middleware("http")
        async def rate_limit(request: Request, call_next):
            host = request.headers.get("host", "")
            allowed, count = limiter.check(host)
            if not allowed:
                logger.warning(f"rate limited host={host!r} count={count} path={request.url.path}")
                return JSONResponse(
                    status_code=429,
                    content={"detail": "Too many requests"},
                    headers={"Retry-After": str(limiter.retry_after(host))},
                )
            return await call_next(request)

    # ------------------ Cancellation ------------------
    @asynccontextmanager
    async def request_cancel(request: Request) -> AsyncIterator[asyncio.Event]:
        """Event set when the request deadline passes or the client goes away."""
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        timer = (
            loop.call_later(S.REQUEST_TIMEOUT_SECONDS, cancel.set)
            if S.REQUEST_TIMEOUT_SECONDS > 0
            else None
        )

        async def _watch():
            while not cancel.is_set():
                if await request.is_disconnected():
                    logger.info(f"client disconnected path={request.url.path}")
                    cancel.set()
                    return
                await asyncio.sleep(DISCONNECT_POLL_SECONDS)

        watcher = asyncio.create_task(_watch())
        try:
            yield cancel
        finally:
            watcher.cancel()
            if timer is not None:
                timer.cancel()

    def _debug_headers(response: Response, cancel: asyncio.Event, count: int):
        if S.DEBUG_UPSTREAM:
            response.headers["X-HN-Items"] = str(count)
            response.headers["X-HN-Partial"] = "1" if cancel.is_set() else "0"
            response.headers["X-HN-Cache"] = str(len(app.state.cache))

    # ------------------ Endpoints ------------------
    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(
            timestamp=datetime.now(timezone.utc).isoformat(),
            cache=CacheStats(**app.state.cache.stats()),
        )

    @app.get("/api/stories/newest", response_model=PageResult)
    async def newest(
        request: Request,
        response: Response,
        page: int = Query(1, ge=1),
        pageSize: int = Query(20, ge=1, le=50),
    ):
        logger.info(f"newest page={page} pageSize={pageSize}")
        async with request_cancel(request) as cancel:
            result = await app.state.service.newest(page=page, page_size=pageSize, cancel=cancel)
        _debug_headers(response, cancel, len(result.stories))
        return result

    @app.get("/api/stories/search", response_model=List[Item])
    async def search(
        request: Request,
        response: Response,
        q: str = Query(...),
        limit: int = Query(50, ge=1, le=100),
    ):
        if not q.strip():
            raise HTTPException(status_code=400, detail="Search query cannot be empty")
        logger.info(f"search q={q!r} limit={limit}")
        async with request_cancel(request) as cancel:
            items = await app.state.service.search(q, limit=limit, cancel=cancel)
        _debug_headers(response, cancel, len(items))
        return items

    @app.get("/api/stories/{item_id}", response_model=Item)
    async def by_id(request: Request, item_id: int = Path(..., gt=0)):
        async with request_cancel(request) as cancel:
            item = await app.state.service.by_id(item_id, cancel=cancel)
        if item is None:
            raise HTTPException(status_code=404, detail=f"Story with ID {item_id} not found")
        return item

    # ------------------ Error handlers ------------------
    @app.exception_handler(UpstreamError)
    async def upstream_errors(request: Request, exc: UpstreamError):
        logger.error(f"upstream failure path={request.url.path}: {exc}")
        status = 504 if isinstance(exc, UpstreamTimeout) else 502
        return JSONResponse(status_code=status, content={"detail": "An error occurred while fetching stories"})

    @app.exception_handler(OperationCancelled)
    async def cancelled(request: Request, exc: OperationCancelled):
        logger.warning(f"request cancelled path={request.url.path}: {exc}")
        return JSONResponse(status_code=504, content={"detail": "Request timed out"})

    @app.exception_handler(Exception)
    async def unhandled_exceptions(request: Request, exc: Exception):
        logger.opt(exception=exc).error(f"unhandled error path={request.url.path}")
        return JSONResponse(status_code=500, content={"detail": "Internal error"})

    return app


app = create_app()


# ------------------ Entrypoint ------------------
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8080")), reload=False)
