"""Domain models for package tasks, resolution results, and releases."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

_TAP_QUALIFIED_RE = re.compile(r"^(?P<tap>[^/]+/[^/]+)/(?P<name>[^/]+)$")
_SHORT_QUALIFIED_RE = re.compile(r"^(?P<tap>[^/]+)/(?P<name>[^/]+)$")


class PackageKind(str, Enum):
    """Homebrew package flavour."""

    FORMULA = "formula"
    CASK = "cask"


class TaskStatus(str, Enum):
    """Terminal outcome of one package task."""

    NO_NEW_VERSION = "no_new_version"
    NOTES_FOUND = "notes_found"
    NO_NOTES = "no_notes"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PackageTask:
    """One outdated package scheduled for changelog lookup."""

    name: str
    kind: PackageKind
    installed_version: str | None
    target_version: str | None

    @property
    def base_name(self) -> str:
        """Package name without any tap qualifier."""

        return split_tap(self.name)[1]

    @property
    def tap(self) -> str | None:
        return split_tap(self.name)[0]

    @property
    def is_outdated(self) -> bool:
        if not self.target_version:
            return True
        return self.installed_version != self.target_version


@dataclass(frozen=True, slots=True)
class PackageMetadata:
    """Upstream URLs and latest version reported by the formulae API."""

    homepage: str | None = None
    source_url: str | None = None
    latest_version: str | None = None


@dataclass(frozen=True, slots=True)
class SourceCandidates:
    """URLs the resolver may inspect for a package."""

    source_url: str | None = None
    homepage: str | None = None


@dataclass(frozen=True, slots=True)
class GitHubSource:
    """Code-hosting repository identity."""

    owner: str
    repo: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def web_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"

    @classmethod
    def from_slug(cls, slug: str) -> GitHubSource:
        owner, _, repo = slug.strip().strip("/").partition("/")
        if not owner or not repo or "/" in repo:
            raise ValueError(f"Invalid repository slug: {slug!r}")
        return cls(owner=owner, repo=repo)


@dataclass(frozen=True, slots=True)
class RegistrySource:
    """Language-package registry identity."""

    registry: str
    name: str


@dataclass(frozen=True, slots=True)
class GenericSource:
    """Plain web host with no structured release data."""

    domain: str


@dataclass(frozen=True, slots=True)
class Unresolved:
    """Terminal negative resolution result."""

    reason: str


ResolvedSource = GitHubSource | RegistrySource | GenericSource


@dataclass(frozen=True, slots=True)
class Resolution:
    """Resolver answer for one package."""

    source: ResolvedSource | Unresolved
    registry: RegistrySource | None = None
    strategy: str | None = None

    @property
    def github(self) -> GitHubSource | None:
        if isinstance(self.source, GitHubSource):
            return self.source
        return None

    @property
    def is_hybrid(self) -> bool:
        return self.github is not None and self.registry is not None

    @property
    def is_resolved(self) -> bool:
        return not isinstance(self.source, Unresolved)


@dataclass(frozen=True, slots=True)
class Release:
    """Release notes payload normalized across upstream sources."""

    tag_name: str
    origin: str
    published_at: datetime | None = None
    body: str | None = None
    html_url: str | None = None


@dataclass(slots=True)
class TaskResult:
    """Rendered output of one task, owned by its batch slot."""

    index: int
    task: PackageTask
    output: str
    status: TaskStatus


@dataclass(slots=True)
class BatchRunSummary:
    """Aggregated outcome of one scheduler run."""

    results: list[TaskResult] = field(default_factory=list)
    batches: int = 0
    rate_limit_pauses: int = 0
    job_limit: int = 1
    elapsed_seconds: float = 0.0

    def count(self, status: TaskStatus) -> int:
        return sum(1 for result in self.results if result.status == status)


def split_tap(name: str) -> tuple[str | None, str]:
    """Split ``user/tap/name`` or ``user/name`` into ``(tap, name)``."""

    for pattern in (_TAP_QUALIFIED_RE, _SHORT_QUALIFIED_RE):
        match = pattern.match(name)
        if match:
            return match.group("tap"), match.group("name")
    return None, name
