"""A scripted coordinator on top of ``httpx.MockTransport``."""

from __future__ import annotations

import threading
from typing import Any, Callable, Iterator

import httpx
import pytest

import trinoduck
from trinoduck import Connection

BASE_URL = "http://coordinator"

Reply = httpx.Response | Callable[[httpx.Request], httpx.Response]


def page(
    query_id: str = "q1",
    next_path: str | None = None,
    state: str | None = "RUNNING",
    columns: list[dict[str, str]] | None = None,
    data: list[list[Any]] | None = None,
    error: dict[str, Any] | None = None,
    headers: dict[str, str] | list[tuple[str, str]] | None = None,
    status_code: int = 200,
    **extra: Any,
) -> httpx.Response:
    """Build one statement response."""
    body: dict[str, Any] = {"id": query_id, "infoUri": f"{BASE_URL}/v1/query/{query_id}"}
    if state is not None:
        body["stats"] = {"state": state}
    if next_path is not None:
        body["nextUri"] = BASE_URL + next_path
    if columns is not None:
        body["columns"] = columns
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    body.update(extra)
    return httpx.Response(status_code, json=body, headers=headers)


class FakeCoordinator:
    """Replies to requests from a per-route script.

    Each ``(method, path)`` route holds a list of replies; they are used in
    order and the last one repeats.
    """

    page = staticmethod(page)

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Reply]] = {}
        self.requests: list[httpx.Request] = []
        self.deleted: list[str] = []
        self.delete_seen = threading.Event()
        self.release = threading.Event()

    def on(self, method: str, path: str, *replies: Reply) -> FakeCoordinator:
        self.routes[(method, path)] = list(replies)
        return self

    def on_post(self, *replies: Reply) -> FakeCoordinator:
        return self.on("POST", "/v1/statement", *replies)

    def on_get(self, path: str, *replies: Reply) -> FakeCoordinator:
        return self.on("GET", path, *replies)

    def blocking(self, request: httpx.Request) -> httpx.Response:
        """A reply that only arrives once the test releases it."""
        self.release.wait(timeout=5)
        return page(state="RUNNING")

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "DELETE":
            self.deleted.append(str(request.url))
            self.delete_seen.set()
            return httpx.Response(204)

        replies = self.routes.get((request.method, request.url.path))
        if not replies:
            return httpx.Response(404, text=f"no route for {request.method} {request.url.path}")
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        return reply(request) if callable(reply) else reply


@pytest.fixture
def coordinator() -> Iterator[FakeCoordinator]:
    fake = FakeCoordinator()
    yield fake
    fake.release.set()


@pytest.fixture
def http_client(coordinator: FakeCoordinator) -> Iterator[httpx.Client]:
    with httpx.Client(transport=httpx.MockTransport(coordinator)) as client:
        yield client


@pytest.fixture
def client_conn(http_client: httpx.Client) -> Iterator[Connection]:
    with trinoduck.connect(base_url=BASE_URL, client=http_client, user="test", max_attempts=3) as conn:
        yield conn
