"""Tests for the HTTP endpoints."""

from typing import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from tests.fakes import BASE, FakeUpstream, story


def _settings(**kwargs) -> Settings:
    kwargs.setdefault("hn_base", BASE)
    kwargs.setdefault("request_timeout_seconds", 5)
    kwargs.setdefault("debug_upstream", False)
    return Settings(**kwargs)


@pytest.fixture
def up() -> FakeUpstream:
    return FakeUpstream(
        {
            1: story(1, title="Angular Tutorial", by="dev1", url="https://angular.dev"),
            2: story(2, title="React Guide", by="dev2"),
            3: story(3, title="Ask HN: How do you learn?", by="curious"),
        },
        listing=[1, 2, 3],
    )


@pytest.fixture
def client(up: FakeUpstream) -> Iterator[TestClient]:
    with TestClient(create_app(_settings(), transport=up.transport())) as c:
        yield c


def test_newest(client: TestClient) -> None:
    r = client.get("/api/stories/newest", params={"page": 1, "pageSize": 2})

    assert r.status_code == 200
    body = r.json()
    assert [s["id"] for s in body["stories"]] == [1, 2]
    assert body["totalCount"] == 3
    assert body["currentPage"] == 1
    assert body["totalPages"] == 2
    assert body["pageSize"] == 2
    assert body["stories"][0] == {
        "id": 1,
        "title": "Angular Tutorial",
        "url": "https://angular.dev",
        "by": "dev1",
        "time": 1_700_000_001,
        "score": 1,
        "descendants": 0,
        "type": "story",
    }


def test_newest_defaults(client: TestClient) -> None:
    body = client.get("/api/stories/newest").json()
    assert body["pageSize"] == 20
    assert len(body["stories"]) == 3


@pytest.mark.parametrize("params", [{"page": 0}, {"pageSize": 0}, {"pageSize": 51}, {"page": "x"}])
def test_newest_rejects_out_of_range(client: TestClient, params: dict) -> None:
    assert client.get("/api/stories/newest", params=params).status_code == 422


def test_by_id(client: TestClient) -> None:
    r = client.get("/api/stories/3")
    assert r.status_code == 200
    assert r.json()["type"] == "ask"


def test_by_id_not_found(client: TestClient) -> None:
    r = client.get("/api/stories/999")
    assert r.status_code == 404
    assert "999" in r.json()["detail"]


def test_by_id_rejects_non_positive(client: TestClient) -> None:
    assert client.get("/api/stories/0").status_code == 422


def test_search(client: TestClient) -> None:
    r = client.get("/api/stories/search", params={"q": "ANGULAR"})
    assert r.status_code == 200
    assert [s["title"] for s in r.json()] == ["Angular Tutorial"]


def test_search_blank_query(client: TestClient) -> None:
    assert client.get("/api/stories/search", params={"q": "   "}).status_code == 400
    assert client.get("/api/stories/search").status_code == 422


@pytest.mark.parametrize("limit", [0, 101])
def test_search_rejects_out_of_range_limit(client: TestClient, limit: int) -> None:
    assert client.get("/api/stories/search", params={"q": "a", "limit": limit}).status_code == 422


def test_listing_failure_maps_to_bad_gateway(up: FakeUpstream, client: TestClient) -> None:
    up.listing_status = 500
    r = client.get("/api/stories/newest")
    assert r.status_code == 502
    assert r.json() == {"detail": "An error occurred while fetching stories"}


def test_listing_timeout_maps_to_gateway_timeout(up: FakeUpstream, client: TestClient) -> None:
    up.listing_failure = httpx.ReadTimeout("slow")
    assert client.get("/api/stories/search", params={"q": "react"}).status_code == 504


@pytest.mark.parametrize(
    "failure",
    [httpx.TooManyRedirects("redirect loop"), httpx.DecodingError("incorrect header check")],
)
def test_listing_request_errors_map_to_bad_gateway(up: FakeUpstream, client: TestClient, failure) -> None:
    up.listing_failure = failure
    assert client.get("/api/stories/newest").status_code == 502


def test_by_id_out_of_range_numbers_still_served(up: FakeUpstream, client: TestClient) -> None:
    up.bodies[7] = b'{"id": 7, "title": "Huge", "by": "dev", "time": 1, "score": 1e400, "type": "story"}'
    r = client.get("/api/stories/7")
    assert r.status_code == 200
    assert r.json()["score"] == 0


def test_health(client: TestClient) -> None:
    client.get("/api/stories/newest")
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["cache"]["entries"] == 4
    assert body["cache"]["limit"] == 1000


def test_request_deadline_returns_partial_page(up: FakeUpstream) -> None:
    up.delays[3] = 10
    app = create_app(_settings(request_timeout_seconds=0.3, debug_upstream=True), transport=up.transport())
    with TestClient(app) as c:
        r = c.get("/api/stories/newest")

    assert r.status_code == 200
    assert [s["id"] for s in r.json()["stories"]] == [1, 2]
    assert r.headers["X-HN-Partial"] == "1"
    assert r.headers["X-HN-Items"] == "2"


def test_rate_limit_per_host(up: FakeUpstream) -> None:
    app = create_app(_settings(rate_limit_per_minute=2), transport=up.transport())
    with TestClient(app) as c:
        assert c.get("/health").status_code == 200
        assert c.get("/api/stories/1").status_code == 200
        r = c.get("/api/stories/newest")

        assert r.status_code == 429
        assert r.json() == {"detail": "Too many requests"}
        assert 1 <= int(r.headers["Retry-After"]) <= 60
        assert c.get("/health", headers={"host": "other.example"}).status_code == 200


def test_rate_limit_disabled(up: FakeUpstream) -> None:
    app = create_app(_settings(rate_limit_per_minute=0), transport=up.transport())
    with TestClient(app) as c:
        assert all(c.get("/health").status_code == 200 for _ in range(150))
    assert not hasattr(app.state, "limiter")
