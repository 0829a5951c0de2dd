"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import random
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import pytest

from brew_change.config import FetchSettings
from brew_change.http.cache import CacheStore
from brew_change.http.fetcher import HttpFetcher

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep host configuration out of tests and point the cache at a temp dir."""

    for name in list(os.environ):
        if name.startswith("BREW_CHANGE_") or name == "GITHUB_TOKEN":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BREW_CHANGE_CACHE_DIR", str(tmp_path / "cache"))


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, text=json.dumps(payload))


def route_handler(routes: dict[str, Any]) -> Handler:
    """Serve ``routes`` keyed by full URL; values are payloads or ``httpx.Response``.

    Unknown URLs answer 404 the way the GitHub API does.
    """

    def _handler(request: httpx.Request) -> httpx.Response:
        value = routes.get(str(request.url))
        if value is None:
            return json_response({"message": "Not Found"}, status_code=404)
        if isinstance(value, httpx.Response):
            return value
        if isinstance(value, str):
            return httpx.Response(200, text=value)
        return json_response(value)

    return _handler


@dataclass(slots=True)
class FetcherHarness:
    fetcher: HttpFetcher
    cache: CacheStore | None
    requests: list[httpx.Request] = field(default_factory=list)
    sleeps: list[float] = field(default_factory=list)

    @property
    def urls(self) -> list[str]:
        return [str(request.url) for request in self.requests]


@pytest.fixture()
def fetcher_factory(tmp_path: Path) -> Iterator[Callable[..., FetcherHarness]]:
    created: list[HttpFetcher] = []

    def _make(
        handler: Handler,
        *,
        use_cache: bool = True,
        max_attempts: int = 3,
        ttl_seconds: int = 3_600,
        github_token: str | None = None,
        **kwargs: Any,
    ) -> FetcherHarness:
        cache = None
        if use_cache:
            cache = CacheStore(tmp_path / "http-cache", ttl_seconds=ttl_seconds)
            cache.ensure_root()
        harness = FetcherHarness(fetcher=None, cache=cache)  # type: ignore[arg-type]

        def _recording(request: httpx.Request) -> httpx.Response:
            harness.requests.append(request)
            return handler(request)

        kwargs.setdefault("sleep", harness.sleeps.append)
        harness.fetcher = HttpFetcher(
            settings=FetchSettings(
                max_attempts=max_attempts,
                retry_delay_seconds=2.0,
                github_token=github_token,
            ),
            cache=cache,
            transport=httpx.MockTransport(_recording),
            rng=random.Random(7),
            **kwargs,
        )
        created.append(harness.fetcher)
        return harness

    yield _make
    for fetcher in created:
        fetcher.close()
