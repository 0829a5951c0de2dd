"""Caching HTTP client with allow-list validation, retries, and stale fallback."""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable
from typing import Any

import httpx

from brew_change import __version__
from brew_change.config import FetchSettings
from brew_change.http.backoff import RetryState, compute_backoff_delay
from brew_change.http.cache import CacheStore
from brew_change.http.errors import (
    CacheError,
    FetchCancelledError,
    FetchExhaustedError,
    NetworkError,
)
from brew_change.http.failure_classifier import classify_status, classify_transport_error
from brew_change.http.validation import validate_json_payload, validate_url

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"brew-change/{__version__}"
MAX_REDIRECTS = 2
GITHUB_API_HOST = "api.github.com"


class HttpFetcher:
    """Shared HTTP client wrapper used by every upstream lookup.

    ``fetch_json`` reads through and writes through the cache; after the retry
    budget is spent it falls back to an expired entry when one exists.
    ``fetch_text`` shares validation and retries but bypasses the cache.
    """

    def __init__(
        self,
        *,
        settings: FetchSettings | None = None,
        cache: CacheStore | None = None,
        stop_event: threading.Event | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._settings = settings or FetchSettings()
        self._cache = cache
        self._stop_event = stop_event
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._client = httpx.Client(
            timeout=httpx.Timeout(
                self._settings.timeout_seconds,
                connect=self._settings.connect_timeout_seconds,
            ),
            headers={"User-Agent": user_agent},
            transport=transport,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
        )

    def fetch_json(self, url: str) -> Any:
        """Return the validated JSON payload for ``url``."""

        validate_url(url)
        cached = self._read_cache(url)
        if cached is not None:
            return cached

        try:
            text, payload = self._fetch_with_retries(url, parse_json=True)
        except FetchExhaustedError:
            stale = self._read_stale(url)
            if stale is None:
                raise
            logger.warning("Using stale cache for %s", url)
            return stale

        if self._cache is not None:
            try:
                self._cache.put(url, text)
            except CacheError as error:
                logger.warning("Cache write failed for %s: %s", url, error)
        return payload

    def fetch_text(self, url: str) -> str:
        """Return the raw body for ``url`` without caching or JSON checks."""

        validate_url(url)
        text, _ = self._fetch_with_retries(url, parse_json=False)
        return text

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _fetch_with_retries(self, url: str, *, parse_json: bool) -> tuple[str, Any]:
        state = RetryState(url=url, max_attempts=self._settings.max_attempts)
        while not state.exhausted:
            attempt = state.next_attempt()
            self._raise_if_cancelled(url)
            try:
                text = self._attempt(url)
                payload = validate_json_payload(text, url) if parse_json else None
            except NetworkError as error:
                state.last_kind = error.kind
                state.last_status = error.status_code
                if attempt > 1:
                    logger.warning(
                        "Attempt %s/%s failed for %s: %s",
                        attempt,
                        state.max_attempts,
                        url,
                        error.message,
                    )
                else:
                    logger.debug("First attempt failed for %s: %s", url, error.message)
                if not error.retryable or state.exhausted:
                    break
                delay = compute_backoff_delay(
                    attempt,
                    self._settings.retry_delay_seconds,
                    self._rng,
                )
                self._wait(delay, url)
                continue
            return text, payload

        raise FetchExhaustedError(
            message=f"Failed to fetch {url} after {state.attempt} attempt(s)",
            url=url,
            attempts=state.attempt,
            last_kind=state.last_kind,
            status_code=state.last_status,
        )

    def _attempt(self, url: str) -> str:
        try:
            response = self._client.get(url, headers=self._headers_for(url))
        except httpx.HTTPError as error:
            classification = classify_transport_error(error)
            raise NetworkError(
                message=f"{classification.description} for {url}",
                kind=classification.kind,
                retryable=classification.retryable,
            ) from error
        if not response.is_success:
            classification = classify_status(response.status_code, response.text)
            raise NetworkError(
                message=classification.description,
                kind=classification.kind,
                status_code=response.status_code,
                retryable=classification.retryable,
            )
        return response.text

    def _headers_for(self, url: str) -> dict[str, str]:
        token = self._settings.github_token
        if token and httpx.URL(url).host == GITHUB_API_HOST:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def _read_cache(self, url: str) -> Any | None:
        if self._cache is None:
            return None
        text = self._cache.get(url)
        if text is None:
            return None
        try:
            return validate_json_payload(text, url)
        except NetworkError:
            logger.debug("Discarding invalid cache entry for %s", url)
            self._cache.invalidate(url)
            return None

    def _read_stale(self, url: str) -> Any | None:
        if self._cache is None:
            return None
        text = self._cache.get_stale(url)
        if text is None:
            return None
        try:
            return validate_json_payload(text, url)
        except NetworkError:
            return None

    def _wait(self, delay: float, url: str) -> None:
        if delay <= 0:
            self._raise_if_cancelled(url)
            return
        if self._stop_event is not None:
            if self._stop_event.wait(delay):
                raise FetchCancelledError(message=f"Fetch of {url} cancelled")
            return
        self._sleep(delay)

    def _raise_if_cancelled(self, url: str) -> None:
        if self._stop_event is not None and self._stop_event.is_set():
            raise FetchCancelledError(message=f"Fetch of {url} cancelled")
