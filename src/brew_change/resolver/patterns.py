"""URL patterns shared by resolver strategies."""

from __future__ import annotations

import re

from brew_change.models import GitHubSource

_GITHUB_REPO_RE = re.compile(
    r"(?:^|//|www\.)github\.com/(?P<owner>[^/?#\s\"'<>]+)/(?P<repo>[^/?#\s\"'<>]+)",
    re.IGNORECASE,
)
_NPM_TARBALL_RE = re.compile(
    r"^https?://registry\.npmjs\.org/(?P<name>(?:@[^/]+/)?[^/]+)/-/",
    re.IGNORECASE,
)
_HREF_LINK_RE = re.compile(r'href="(https://github\.com/[^"]*)"', re.IGNORECASE)
_QUOTED_LINK_RE = re.compile(r'"(https://github\.com/[^"]*)"', re.IGNORECASE)
_BARE_LINK_RE = re.compile(r"https://github\.com/[^\s<>\"]*", re.IGNORECASE)
_NON_ROOT_TAILS: tuple[str, ...] = ("/tree/", "/blob/", "/releases/", "/issues/")

REGISTRY_HOST_MARKERS: tuple[str, ...] = (
    "files.pythonhosted.org",
    "pypi.io",
    "crates.io",
    "registry.npmjs.org",
)


def match_github_url(url: str | None) -> GitHubSource | None:
    """Owner/repo embedded in a ``github.com`` URL, if any."""

    if not url:
        return None
    match = _GITHUB_REPO_RE.search(url)
    if match is None:
        return None
    repo = _strip_git_suffix(match.group("repo"))
    if not repo:
        return None
    return GitHubSource(owner=match.group("owner"), repo=repo)


def is_registry_url(url: str | None) -> bool:
    """True when ``url`` points at a package-registry download host."""

    if not url:
        return False
    lowered = url.lower()
    return any(marker in lowered for marker in REGISTRY_HOST_MARKERS)


def npm_package_name(url: str | None) -> str | None:
    """Package name from an npm registry tarball URL."""

    if not url:
        return None
    match = _NPM_TARBALL_RE.match(url.strip())
    if match is None:
        return None
    return match.group("name")


def find_github_link(content: str) -> str | None:
    """First GitHub link in a page: markup attribute, then quoted string, then bare URL."""

    for pattern in (_HREF_LINK_RE, _QUOTED_LINK_RE):
        match = pattern.search(content)
        if match:
            return match.group(1)
    match = _BARE_LINK_RE.search(content)
    if match:
        return match.group(0)
    return None


def clean_repo_path(link: str) -> GitHubSource | None:
    """Normalize a GitHub link found in page content to its repository root."""

    path = link
    for tail in _NON_ROOT_TAILS:
        head, found, _ = path.partition(tail)
        if found:
            path = head
    return match_github_url(path)


def _strip_git_suffix(repo: str) -> str:
    if repo.lower().endswith(".git"):
        return repo[: -len(".git")]
    return repo
