"""Content-addressed on-disk response cache with TTL validity and atomic writes."""

from __future__ import annotations

import logging
import os
import re
import threading
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from brew_change.http.errors import CacheError
from brew_change.http.validation import url_hash

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".json"
TEMP_MARKER = ".tmp."
DIR_MODE = 0o700
FILE_MODE = 0o600
_ENTRY_NAME_RE = re.compile(r"^[0-9a-f]{64}\.json$")


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to a process-unique sibling temp file, then rename it over ``path``."""

    tmp_path = path.with_name(
        f".{path.name}{TEMP_MARKER}{os.getpid()}.{threading.get_ident()}.{uuid.uuid4().hex}",
    )
    try:
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, FILE_MODE)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class CacheStore:
    """One file per URL under ``root``, keyed by SHA-256 of the canonical URL.

    Entries are replaced with ``os.replace`` so readers see either the old or
    the new payload, never a partial one. Concurrent writers race with
    last-writer-wins semantics and need no lock.
    """

    def __init__(
        self,
        root: Path,
        *,
        ttl_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = root
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            os.chmod(self.root, DIR_MODE)
        except OSError as error:
            raise CacheError(
                message=f"Cannot create cache directory {self.root}: {error}",
                path=str(self.root),
            ) from error

    def key_for(self, url: str) -> str:
        return url_hash(url)

    def path_for(self, url: str) -> Path:
        return self.root / f"{self.key_for(url)}{ENTRY_SUFFIX}"

    def get(self, url: str) -> str | None:
        """Return the payload when the entry exists and is younger than the TTL."""

        path = self.path_for(url)
        try:
            age = self._clock() - path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as error:
            logger.warning("Cannot stat cache entry %s: %s", path, error)
            return None
        if age >= self.ttl_seconds:
            return None
        return self._read(path)

    def get_stale(self, url: str) -> str | None:
        """Return the payload regardless of age."""

        path = self.path_for(url)
        if not path.exists():
            return None
        return self._read(path)

    def put(self, url: str, payload: str) -> Path:
        """Atomically write ``payload`` for ``url``; raise ``CacheError`` on failure."""

        path = self.path_for(url)
        try:
            atomic_write_text(path, payload)
        except OSError as error:
            raise CacheError(
                message=f"Failed to write cache entry {path}: {error}",
                path=str(path),
            ) from error
        return path

    def invalidate(self, url: str) -> bool:
        path = self.path_for(url)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def clear(self) -> int:
        """Remove every cache entry and leftover temp file, returning the count."""

        if not self.root.is_dir():
            return 0
        removed = 0
        for path in self.root.iterdir():
            if not path.is_file():
                continue
            if _ENTRY_NAME_RE.match(path.name) or TEMP_MARKER in path.name:
                path.unlink(missing_ok=True)
                removed += 1
        return removed

    def sweep_stale_temp_files(self, grace_seconds: int = 300) -> int:
        """Delete temp files abandoned by interrupted writers."""

        if not self.root.is_dir():
            return 0
        now = self._clock()
        removed = 0
        for path in self.root.glob(f".*{TEMP_MARKER}*"):
            try:
                if now - path.stat().st_mtime <= grace_seconds:
                    continue
                path.unlink()
            except FileNotFoundError:
                continue
            removed += 1
        if removed:
            logger.debug("Removed %s stale cache temp files from %s", removed, self.root)
        return removed

    def _read(self, path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as error:
            logger.warning("Cannot read cache entry %s: %s", path, error)
            return None
