"""Runtime configuration for fetch, cache, discovery, and batch scheduling."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "brew-change"
MAX_JOBS_ABSOLUTE = 8
GIB = 1024**3


@dataclass(frozen=True, slots=True)
class FetchSettings:
    """HTTP retry and timeout settings."""

    max_attempts: int = 3
    timeout_seconds: float = 10.0
    connect_timeout_seconds: float = 5.0
    retry_delay_seconds: float = 2.0
    github_token: str | None = None


@dataclass(frozen=True, slots=True)
class CacheSettings:
    """On-disk response cache settings."""

    cache_dir: Path = DEFAULT_CACHE_DIR
    ttl_seconds: int = 3_600
    temp_grace_seconds: int = 300


@dataclass(frozen=True, slots=True)
class SchedulerSettings:
    """Batch concurrency settings."""

    jobs: int = 1
    recommended_jobs: int = 1
    rate_limit_delay_seconds: float = 1.0
    load_threshold: float = 4.0


@dataclass(frozen=True, slots=True)
class DiscoverySettings:
    """Opt-in homepage content scan."""

    docs_repo_enabled: bool = False


@dataclass(frozen=True, slots=True)
class Settings:
    """Application settings grouped by concern, built once per process."""

    fetch: FetchSettings = field(default_factory=FetchSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)

    @classmethod
    def from_env(cls, jobs_override: int | None = None) -> Settings:
        """Load settings from environment, sizing the job pool for this machine."""

        recommended = compute_default_jobs(
            cpu_count=os.cpu_count() or 1,
            memory_gb=detect_memory_gb(),
        )
        requested = jobs_override
        if requested is None:
            raw_jobs = os.getenv("BREW_CHANGE_JOBS", "").strip()
            requested = int(raw_jobs) if raw_jobs else None
        jobs = recommended if requested is None else clamp_jobs(requested, recommended)

        return cls(
            fetch=FetchSettings(
                max_attempts=int(os.getenv("BREW_CHANGE_MAX_RETRIES", "3")),
                timeout_seconds=float(os.getenv("BREW_CHANGE_TIMEOUT_SECONDS", "10")),
                connect_timeout_seconds=float(
                    os.getenv("BREW_CHANGE_CONNECT_TIMEOUT_SECONDS", "5"),
                ),
                retry_delay_seconds=float(os.getenv("BREW_CHANGE_RETRY_DELAY_SECONDS", "2")),
                github_token=_github_token(),
            ),
            cache=CacheSettings(
                cache_dir=Path(
                    os.getenv("BREW_CHANGE_CACHE_DIR", str(DEFAULT_CACHE_DIR)),
                ).expanduser(),
                ttl_seconds=int(os.getenv("BREW_CHANGE_CACHE_TTL_SECONDS", "3600")),
            ),
            scheduler=SchedulerSettings(
                jobs=jobs,
                recommended_jobs=recommended,
                rate_limit_delay_seconds=float(
                    os.getenv("BREW_CHANGE_RATE_LIMIT_DELAY_SECONDS", "1"),
                ),
            ),
            discovery=DiscoverySettings(
                docs_repo_enabled=_env_bool("BREW_CHANGE_DOCS_REPO", default=False),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values no component can work with."""

        if self.fetch.max_attempts < 1:
            raise ValueError("BREW_CHANGE_MAX_RETRIES must be >= 1.")
        if self.fetch.timeout_seconds <= 0:
            raise ValueError("BREW_CHANGE_TIMEOUT_SECONDS must be > 0.")
        if self.fetch.connect_timeout_seconds <= 0:
            raise ValueError("BREW_CHANGE_CONNECT_TIMEOUT_SECONDS must be > 0.")
        if self.fetch.retry_delay_seconds < 0:
            raise ValueError("BREW_CHANGE_RETRY_DELAY_SECONDS must be >= 0.")
        if self.cache.ttl_seconds < 0:
            raise ValueError("BREW_CHANGE_CACHE_TTL_SECONDS must be >= 0.")
        if self.scheduler.rate_limit_delay_seconds < 0:
            raise ValueError("BREW_CHANGE_RATE_LIMIT_DELAY_SECONDS must be >= 0.")
        if self.scheduler.jobs < 1:
            raise ValueError("Parallel jobs must be >= 1.")


def compute_default_jobs(*, cpu_count: int, memory_gb: int) -> int:
    """Recommended job count: min of CPUs, one job per 2 GiB of RAM, and 8."""

    return max(1, min(cpu_count, memory_gb // 2, MAX_JOBS_ABSOLUTE))


def clamp_jobs(requested: int, recommended: int) -> int:
    """Bound a user override to ``[1, 1.5 x recommended]``."""

    max_allowed = max(1, recommended * 3 // 2)
    if requested < 1:
        logger.warning("Parallel jobs must be at least 1. Using 1 instead of %s.", requested)
        return 1
    if requested > max_allowed:
        logger.warning(
            "Parallel jobs (%s) exceeds maximum allowed (%s, 1.5x recommended). "
            "Recommended value for this system: %s.",
            requested,
            max_allowed,
            recommended,
        )
        return max_allowed
    return requested


def detect_memory_gb() -> int:
    """Physical memory in whole GiB, 1 when it cannot be determined."""

    try:
        pages = os.sysconf("SC_PHYS_PAGES")
        page_size = os.sysconf("SC_PAGE_SIZE")
    except (AttributeError, OSError, ValueError):
        return 1
    if pages <= 0 or page_size <= 0:
        return 1
    return max(1, (pages * page_size) // GIB)


def _github_token() -> str | None:
    for name in ("BREW_CHANGE_GITHUB_TOKEN", "GITHUB_TOKEN"):
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off", ""}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
