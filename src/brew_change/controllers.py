"""Controllers for brew-change CLI commands."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from brew_change.config import Settings
from brew_change.http.cache import CacheStore
from brew_change.http.fetcher import HttpFetcher
from brew_change.inventory import BrewInventory
from brew_change.models import BatchRunSummary, PackageTask, TaskResult, TaskStatus
from brew_change.pipeline import ChangelogPipeline
from brew_change.releases.changelog import ChangelogClient
from brew_change.releases.formulae import FormulaeApiClient
from brew_change.releases.github import GitHubReleaseClient
from brew_change.releases.npm import NpmRegistryClient
from brew_change.render import TextRenderer
from brew_change.resolver.discovery import DiscoveredMappingStore
from brew_change.resolver.resolver import RepositoryResolver, default_strategies
from brew_change.resolver.strategies import HomepageScan
from brew_change.scheduler import BatchScheduler

LineSink = Callable[[str], None]


@dataclass(slots=True)
class ChangelogCommand:
    """CLI inputs for changelog command."""

    packages: tuple[str, ...]
    all_outdated: bool
    jobs: int | None


def build_pipeline(
    settings: Settings,
    fetcher: HttpFetcher,
    inventory: BrewInventory | None = None,
) -> ChangelogPipeline:
    """Wire every lookup around one shared fetcher."""

    store = DiscoveredMappingStore.in_cache_dir(settings.cache.cache_dir)
    strategies = default_strategies(
        fetcher=fetcher,
        store=store,
        docs_repo_enabled=settings.discovery.docs_repo_enabled,
    )
    homepage_scan = next(
        (strategy for strategy in strategies if isinstance(strategy, HomepageScan)),
        None,
    )
    return ChangelogPipeline(
        formulae=FormulaeApiClient(fetcher),
        resolver=RepositoryResolver(strategies),
        github=GitHubReleaseClient(fetcher),
        npm=NpmRegistryClient(fetcher),
        changelog=ChangelogClient(fetcher),
        renderer=TextRenderer(),
        metadata_fallback=inventory.metadata if inventory is not None else None,
        homepage_scan=homepage_scan,
    )


def summary_line(summary: BatchRunSummary) -> str:
    return (
        f"Summary: {summary.count(TaskStatus.NO_NEW_VERSION)} no new version, "
        f"{summary.count(TaskStatus.NOTES_FOUND)} notes found, "
        f"{summary.count(TaskStatus.NO_NOTES)} no notes found, "
        f"{summary.count(TaskStatus.FAILED)} processing errors "
        f"({summary.elapsed_seconds:.1f}s)"
    )


class BrewChangeCliController:
    """Coordinates brew-change command execution."""

    def __init__(
        self,
        inventory: BrewInventory | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._inventory = inventory or BrewInventory()
        self._transport = transport

    def outdated(self) -> list[str]:
        tasks = self._inventory.outdated()
        if not tasks:
            return ["All packages are up to date."]
        lines = [f"{len(tasks)} outdated package(s):"]
        for task in tasks:
            lines.append(
                f"  {task.name} ({task.kind.value}): "
                f"{task.installed_version or '[not installed]'} → "
                f"{task.target_version or 'unknown'}",
            )
        return lines

    def changelog(
        self,
        command: ChangelogCommand,
        *,
        emit: LineSink,
        progress: LineSink | None = None,
    ) -> list[str]:
        """Render changelogs batch by batch through ``emit``; return the summary lines."""

        if command.packages and command.all_outdated:
            raise ValueError("Pass package names or --all, not both.")
        if not command.packages and not command.all_outdated:
            raise ValueError("Pass one or more package names, or --all for every outdated package.")

        settings = Settings.from_env(jobs_override=command.jobs)
        settings.validate()
        cache = _prepared_cache(settings)

        tasks = (
            self._inventory.info(command.packages)
            if command.packages
            else self._inventory.outdated()
        )
        if not tasks:
            return ["All packages are up to date."]

        if progress is not None:
            progress(
                f"Processing changelogs for {len(tasks)} package(s) "
                f"with up to {settings.scheduler.jobs} parallel job(s)...",
            )

        stop_event = threading.Event()
        with HttpFetcher(
            settings=settings.fetch,
            cache=cache,
            stop_event=stop_event,
            transport=self._transport,
        ) as fetcher:
            pipeline = build_pipeline(settings, fetcher, self._inventory)
            scheduler = BatchScheduler(
                pipeline.process,
                job_limit=settings.scheduler.jobs,
                rate_limit_delay_seconds=settings.scheduler.rate_limit_delay_seconds,
                load_threshold=settings.scheduler.load_threshold,
                stop_event=stop_event,
                emit=emit,
                on_progress=_progress_reporter(progress),
            )
            summary = scheduler.run(tasks)
        return ["", summary_line(summary)]

    def cache_sweep(self) -> list[str]:
        settings = Settings.from_env()
        cache = CacheStore(settings.cache.cache_dir, ttl_seconds=settings.cache.ttl_seconds)
        removed = cache.sweep_stale_temp_files(settings.cache.temp_grace_seconds)
        return [f"Removed {removed} stale temp file(s) from {cache.root}"]

    def cache_clear(self) -> list[str]:
        settings = Settings.from_env()
        cache = CacheStore(settings.cache.cache_dir, ttl_seconds=settings.cache.ttl_seconds)
        removed = cache.clear()
        return [f"Removed {removed} cache file(s) from {cache.root}"]


def _prepared_cache(settings: Settings) -> CacheStore:
    cache = CacheStore(settings.cache.cache_dir, ttl_seconds=settings.cache.ttl_seconds)
    cache.ensure_root()
    cache.sweep_stale_temp_files(settings.cache.temp_grace_seconds)
    return cache


def _progress_reporter(
    progress: LineSink | None,
) -> Callable[[int, int, TaskResult], None] | None:
    if progress is None:
        return None

    def _report(completed: int, total: int, result: TaskResult) -> None:
        progress(f"[{completed}/{total}] {_describe(result.task)}")

    return _report


def _describe(task: PackageTask) -> str:
    return f"{task.name} {task.installed_version or '?'} → {task.target_version or '?'}"
