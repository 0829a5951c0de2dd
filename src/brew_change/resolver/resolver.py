"""Strategy-chain resolver for a package's authoritative upstream source."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from brew_change.http.fetcher import HttpFetcher
from brew_change.http.validation import extract_domain
from brew_change.models import (
    GenericSource,
    Resolution,
    RegistrySource,
    SourceCandidates,
    Unresolved,
)
from brew_change.resolver.discovery import DiscoveredMappingStore
from brew_change.resolver.patterns import npm_package_name
from brew_change.resolver.strategies import (
    HeuristicMatch,
    HomepageMatch,
    HomepageScan,
    KnownNameMatch,
    ResolveContext,
    ResolverStrategy,
    SourceUrlMatch,
)

logger = logging.getLogger(__name__)

NPM_REGISTRY = "npm"


def default_strategies(
    *,
    fetcher: HttpFetcher | None = None,
    store: DiscoveredMappingStore | None = None,
    docs_repo_enabled: bool = False,
) -> list[ResolverStrategy]:
    """Standard chain; the homepage scan is appended only when enabled."""

    strategies: list[ResolverStrategy] = [
        HomepageMatch(),
        SourceUrlMatch(),
        KnownNameMatch(),
        HeuristicMatch(),
    ]
    if docs_repo_enabled:
        if fetcher is None or store is None:
            raise ValueError("Homepage scan requires a fetcher and a mapping store.")
        strategies.append(HomepageScan(fetcher=fetcher, store=store))
    return strategies


def detect_registry(source_url: str | None) -> RegistrySource | None:
    name = npm_package_name(source_url)
    if name is None:
        return None
    return RegistrySource(registry=NPM_REGISTRY, name=name)


class RepositoryResolver:
    """Evaluate strategies in order; the first definite answer wins."""

    def __init__(self, strategies: Sequence[ResolverStrategy] | None = None) -> None:
        self._strategies = list(strategies) if strategies is not None else default_strategies()

    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self._strategies]

    def resolve(self, candidates: SourceCandidates, package_name: str) -> Resolution:
        registry = detect_registry(candidates.source_url)
        homepage = candidates.homepage or ""
        if registry is not None and "github.com" not in homepage.lower():
            logger.debug(
                "%s: %s registry package without GitHub homepage",
                package_name,
                registry.registry,
            )
            return Resolution(source=registry, registry=registry, strategy="registry")

        context = ResolveContext(candidates=candidates, package_name=package_name)
        for strategy in self._strategies:
            source = strategy.resolve(context)
            if source is not None:
                logger.debug("%s resolved to %s via %s", package_name, source.slug, strategy.name)
                return Resolution(source=source, registry=registry, strategy=strategy.name)

        if registry is not None:
            return Resolution(source=registry, registry=registry, strategy="registry")
        domain = extract_domain(candidates.source_url)
        if domain:
            return Resolution(source=GenericSource(domain=domain), strategy="generic")
        return Resolution(source=Unresolved(reason=f"No upstream source found for {package_name}"))
