"""Persistent package -> repository mappings found by homepage scans."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from brew_change.http.cache import atomic_write_text
from brew_change.models import GitHubSource

logger = logging.getLogger(__name__)

PATTERNS_FILENAME = "github-patterns.json"


def _today() -> date:
    return datetime.now(UTC).date()


class DiscoveredMappingStore:
    """JSON file of ``{package: {homepage, github, discovered, success_count}}``.

    Read-modify-write cycles are serialized with a process-local lock and the
    file is replaced atomically.
    """

    def __init__(self, path: Path, *, today: Callable[[], date] = _today) -> None:
        self.path = path
        self._today = today
        self._lock = threading.Lock()

    @classmethod
    def in_cache_dir(cls, cache_dir: Path) -> DiscoveredMappingStore:
        return cls(cache_dir / PATTERNS_FILENAME)

    def lookup(self, package: str) -> GitHubSource | None:
        with self._lock:
            entry = self._load().get(package)
        if not isinstance(entry, dict):
            return None
        slug = entry.get("github")
        if not isinstance(slug, str):
            return None
        try:
            return GitHubSource.from_slug(slug)
        except ValueError:
            logger.debug("Ignoring malformed discovered mapping for %s: %r", package, slug)
            return None

    def record(self, package: str, homepage: str, source: GitHubSource) -> None:
        """Insert or refresh a mapping, bumping its success counter."""

        with self._lock:
            mappings = self._load()
            previous = mappings.get(package)
            count = previous.get("success_count", 0) if isinstance(previous, dict) else 0
            mappings[package] = {
                "homepage": homepage,
                "github": source.slug,
                "discovered": self._today().isoformat(),
                "success_count": int(count) + 1,
            }
            try:
                self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
                atomic_write_text(self.path, json.dumps(mappings, indent=2, sort_keys=True))
            except OSError as error:
                logger.warning("Cannot persist discovered mapping for %s: %s", package, error)

    def _load(self) -> dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as error:
            logger.warning("Cannot read %s: %s", self.path, error)
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt mapping file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}
