"""Helpers shared by release lookups."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any

from brew_change.http.errors import FetchCancelledError, FetchError
from brew_change.http.fetcher import HttpFetcher

logger = logging.getLogger(__name__)

_REVISION_SUFFIX_RE = re.compile(r"^(?P<version>.+)_\d+$")


def strip_revision(version: str) -> str:
    """Drop a Homebrew revision suffix: ``0.61_1`` -> ``0.61``."""

    match = _REVISION_SUFFIX_RE.match(version)
    if match:
        return match.group("version")
    return version


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware datetime."""

    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def try_fetch_json(fetcher: HttpFetcher, url: str) -> Any | None:
    """Fetch JSON, mapping a failed lookup to ``None``; cancellation still propagates."""

    try:
        return fetcher.fetch_json(url)
    except FetchCancelledError:
        raise
    except FetchError as error:
        logger.debug("Lookup failed for %s: %s", url, error)
        return None


def try_fetch_text(fetcher: HttpFetcher, url: str) -> str | None:
    try:
        return fetcher.fetch_text(url)
    except FetchCancelledError:
        raise
    except FetchError as error:
        logger.debug("Lookup failed for %s: %s", url, error)
        return None
