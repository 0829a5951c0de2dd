"""CHANGELOG.md section extraction for documentation-style repositories."""

from __future__ import annotations

import logging
import re

from brew_change.http.fetcher import HttpFetcher
from brew_change.models import GitHubSource, Release
from brew_change.releases.base import strip_revision, try_fetch_text

logger = logging.getLogger(__name__)

RAW_CONTENT_BASE = "https://raw.githubusercontent.com"
CHANGELOG_BRANCHES: tuple[str, ...] = ("main", "master")
CHANGELOG_FILENAME = "CHANGELOG.md"
ORIGIN_CHANGELOG = "changelog"

_ANY_VERSION_HEADER_RE = re.compile(r"^##?\s*\[?v?\d+\.\d+")


def _version_header_re(version: str) -> re.Pattern[str]:
    return re.compile(rf"^##?\s*\[?v?{re.escape(version)}(?![\w.])")


def parse_changelog_section(content: str, version: str) -> str | None:
    """Lines between the header for ``version`` and the next version header."""

    header_re = _version_header_re(version.removeprefix("v"))
    collected: list[str] = []
    in_section = False
    for line in content.splitlines():
        if not in_section:
            in_section = bool(header_re.match(line))
            continue
        if _ANY_VERSION_HEADER_RE.match(line):
            break
        collected.append(line)
    section = "\n".join(collected).strip("\n")
    return section if section.strip() else None


class ChangelogClient:
    def __init__(self, fetcher: HttpFetcher, *, raw_base: str = RAW_CONTENT_BASE) -> None:
        self._fetcher = fetcher
        self._raw_base = raw_base.rstrip("/")

    def find_release(self, source: GitHubSource, version: str) -> Release | None:
        """Release built from the repository changelog, ``None`` when the file is absent.

        A changelog without a section for ``version`` still yields a release
        pointing at the file, with no body.
        """

        version = strip_revision(version)
        for branch in CHANGELOG_BRANCHES:
            url = f"{self._raw_base}/{source.slug}/{branch}/{CHANGELOG_FILENAME}"
            content = try_fetch_text(self._fetcher, url)
            if content is None:
                continue
            logger.debug("Found %s for %s on %s", CHANGELOG_FILENAME, source.slug, branch)
            return Release(
                tag_name=version,
                origin=ORIGIN_CHANGELOG,
                body=parse_changelog_section(content, version),
                html_url=f"{source.web_url}/blob/{branch}/{CHANGELOG_FILENAME}",
            )
        return None
