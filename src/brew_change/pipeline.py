"""Per-package unit of work: metadata, resolution, release lookup, rendering."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

from brew_change.http.errors import FetchCancelledError, FetchError
from brew_change.models import (
    GitHubSource,
    PackageMetadata,
    PackageTask,
    Release,
    Resolution,
    SourceCandidates,
)
from brew_change.releases.changelog import ChangelogClient
from brew_change.releases.formulae import FormulaeApiClient
from brew_change.releases.github import GitHubReleaseClient
from brew_change.releases.npm import NpmRegistryClient
from brew_change.render import RenderedOutput, TextRenderer
from brew_change.resolver.resolver import RepositoryResolver
from brew_change.resolver.strategies import HomepageScan

logger = logging.getLogger(__name__)

MetadataFallback = Callable[[PackageTask], PackageMetadata | None]


@dataclass(slots=True)
class ChangelogPipeline:
    """Turn one ``PackageTask`` into rendered output.

    Every collaborator shares a single ``HttpFetcher`` so retries, caching,
    and cancellation behave the same for every upstream call.
    """

    formulae: FormulaeApiClient
    resolver: RepositoryResolver
    github: GitHubReleaseClient
    npm: NpmRegistryClient
    changelog: ChangelogClient
    renderer: TextRenderer
    metadata_fallback: MetadataFallback | None = None
    homepage_scan: HomepageScan | None = None

    def process(self, task: PackageTask) -> RenderedOutput:
        if not task.is_outdated:
            return self.renderer.render_up_to_date(task)

        metadata = self._metadata(task)
        if not task.target_version and metadata.latest_version:
            task = replace(task, target_version=metadata.latest_version)
            if not task.is_outdated:
                return self.renderer.render_up_to_date(task)

        resolution = self.resolver.resolve(
            SourceCandidates(source_url=metadata.source_url, homepage=metadata.homepage),
            task.name,
        )
        resolution, release = self._release(task, resolution, metadata.homepage)
        return self.renderer.render(task, resolution, release, metadata)

    def _metadata(self, task: PackageTask) -> PackageMetadata:
        try:
            return self.formulae.metadata(task)
        except FetchCancelledError:
            raise
        except FetchError as error:
            logger.debug("Formulae API lookup failed for %s: %s", task.name, error)
        if self.metadata_fallback is not None:
            fallback = self.metadata_fallback(task)
            if fallback is not None:
                return fallback
        logger.warning("No package metadata available for %s", task.name)
        return PackageMetadata()

    def _release(
        self,
        task: PackageTask,
        resolution: Resolution,
        homepage: str | None,
    ) -> tuple[Resolution, Release | None]:
        version = task.target_version
        if not version:
            return resolution, None

        registry_release = None
        if resolution.registry is not None:
            registry_release = self.npm.find_release(resolution.registry.name, version)
            if registry_release is None:
                logger.warning("Could not fetch release date from npm registry for %s", task.name)

        github = resolution.github
        if github is None:
            return resolution, registry_release

        if resolution.strategy == HomepageScan.name:
            resolution, github_release = self._discovered_release(
                task.name,
                homepage,
                resolution,
                github,
                version,
            )
        else:
            github_release = self.github.find_release(github, version)
        if github_release is None:
            return resolution, registry_release
        if registry_release is not None and registry_release.published_at is not None:
            return resolution, replace(github_release, published_at=registry_release.published_at)
        return resolution, github_release

    def _discovered_release(  # noqa: PLR0913
        self,
        package_name: str,
        homepage: str | None,
        resolution: Resolution,
        source: GitHubSource,
        version: str,
    ) -> tuple[Resolution, Release | None]:
        """Release from a scanned repository; only productive mappings are persisted.

        A remembered mapping that yields nothing triggers one fresh scan of
        the homepage, so a wrong link picked up earlier does not stick.
        """

        release = self._repository_release(source, version)
        scan = self.homepage_scan
        if scan is None or not homepage:
            return resolution, release
        if release is not None:
            scan.confirm(package_name, homepage, source)
            return resolution, release
        if not scan.is_remembered(package_name, source):
            return resolution, None

        logger.debug("Mapping %s for %s gave no release, scanning again", source.slug, package_name)
        fresh = scan.discover(homepage)
        if fresh is None or fresh == source:
            return resolution, None
        release = self._repository_release(fresh, version)
        if release is None:
            return resolution, None
        scan.confirm(package_name, homepage, fresh)
        return replace(resolution, source=fresh), release

    def _repository_release(self, source: GitHubSource, version: str) -> Release | None:
        release = self.changelog.find_release(source, version)
        if release is not None:
            return release
        return self.github.find_release(source, version)
