"""Upstream source resolution for Homebrew packages."""

from brew_change.resolver.resolver import RepositoryResolver, default_strategies, detect_registry
from brew_change.resolver.strategies import ResolveContext, ResolverStrategy

__all__ = [
    "RepositoryResolver",
    "ResolveContext",
    "ResolverStrategy",
    "default_strategies",
    "detect_registry",
]
