"""Ordered resolver strategies mapping package URLs to a GitHub repository."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from brew_change.http.errors import FetchCancelledError, FetchError
from brew_change.http.fetcher import HttpFetcher
from brew_change.http.validation import extract_domain
from brew_change.models import GitHubSource, SourceCandidates, split_tap
from brew_change.resolver.discovery import DiscoveredMappingStore
from brew_change.resolver.patterns import (
    clean_repo_path,
    find_github_link,
    is_registry_url,
    match_github_url,
)

logger = logging.getLogger(__name__)

KNOWN_REPOSITORIES: dict[str, str] = {
    "vercel-cli": "vercel/vercel",
    "gh": "cli/cli",
    "node": "nodejs/node",
    "yarn": "yarnpkg/yarn",
    "crush": "charmbracelet/crush",
    "emdash": "generalaction/emdash",
}
KNOWN_HOMEPAGE_DOMAINS: dict[str, str] = {
    "anthropic.com": "anthropics/claude-code",
    "claude.ai": "anthropics/claude-code",
    "aws.amazon.com": "aws/aws-cli",
    "awscli.amazonaws.com": "aws/aws-cli",
    "cli.github.com": "cli/cli",
    "cloud.google.com": "GoogleCloudPlatform/google-cloud-sdk",
}


@dataclass(frozen=True, slots=True)
class ResolveContext:
    """Inputs every strategy sees for one package."""

    candidates: SourceCandidates
    package_name: str

    @property
    def base_name(self) -> str:
        return split_tap(self.package_name)[1]

    @property
    def is_tap_qualified(self) -> bool:
        return "/" in self.package_name


class ResolverStrategy(Protocol):
    """One rule in the resolution chain."""

    name: str

    def resolve(self, context: ResolveContext) -> GitHubSource | None:
        """Return a definite answer or ``None`` to defer to the next strategy."""
        raise NotImplementedError


class HomepageMatch:
    """Maintainer-declared homepage pointing straight at GitHub."""

    name = "homepage"

    def resolve(self, context: ResolveContext) -> GitHubSource | None:
        return match_github_url(context.candidates.homepage)


class SourceUrlMatch:
    """Download URL hosted on GitHub; registry hosts never encode the repository."""

    name = "source_url"

    def resolve(self, context: ResolveContext) -> GitHubSource | None:
        source_url = context.candidates.source_url
        if is_registry_url(source_url):
            return None
        return match_github_url(source_url)


class KnownNameMatch:
    name = "known_name"

    def __init__(self, table: dict[str, str] | None = None) -> None:
        self._table = KNOWN_REPOSITORIES if table is None else table

    def resolve(self, context: ResolveContext) -> GitHubSource | None:
        slug = self._table.get(context.base_name)
        if slug is None:
            return None
        return GitHubSource.from_slug(slug)


class HeuristicMatch:
    """Guess ``name/name`` when a URL merely mentions GitHub."""

    name = "heuristic"

    def resolve(self, context: ResolveContext) -> GitHubSource | None:
        if context.is_tap_qualified:
            return None
        urls = (context.candidates.source_url, context.candidates.homepage)
        if not any(url and "github" in url for url in urls):
            return None
        return GitHubSource(owner=context.package_name, repo=context.package_name)


class HomepageScan:
    """Discover the repository from the homepage when nothing structural matched.

    Order: previously confirmed mapping, known homepage domains, then a fetch
    of the homepage body looking for an embedded GitHub link. A discovery is
    only a candidate: the pipeline calls ``confirm`` once a release was read
    from it, and ``discover`` again when a remembered mapping stops yielding
    releases.
    """

    name = "homepage_scan"

    def __init__(
        self,
        *,
        fetcher: HttpFetcher,
        store: DiscoveredMappingStore,
        domain_table: dict[str, str] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._domain_table = KNOWN_HOMEPAGE_DOMAINS if domain_table is None else domain_table

    def resolve(self, context: ResolveContext) -> GitHubSource | None:
        homepage = context.candidates.homepage
        if not homepage:
            return None

        remembered = self._store.lookup(context.package_name)
        if remembered is not None:
            logger.debug(
                "Using discovered mapping for %s: %s",
                context.package_name,
                remembered.slug,
            )
            return remembered
        return self.discover(homepage)

    def discover(self, homepage: str) -> GitHubSource | None:
        """Known domain table first, then the homepage body."""

        slug = self._domain_table.get(extract_domain(homepage) or "")
        if slug is not None:
            return GitHubSource.from_slug(slug)
        return self._scan(homepage)

    def is_remembered(self, package_name: str, source: GitHubSource) -> bool:
        return self._store.lookup(package_name) == source

    def confirm(self, package_name: str, homepage: str, source: GitHubSource) -> None:
        """Persist a mapping that produced release information."""

        self._store.record(package_name, homepage, source)

    def _scan(self, homepage: str) -> GitHubSource | None:
        try:
            content = self._fetcher.fetch_text(homepage)
        except FetchCancelledError:
            raise
        except FetchError as error:
            logger.debug("Homepage scan skipped for %s: %s", homepage, error)
            return None
        link = find_github_link(content)
        if link is None:
            return None
        return clean_repo_path(link)
