"""GitHub release and tag lookups."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

from brew_change.http.fetcher import HttpFetcher
from brew_change.models import GitHubSource, Release
from brew_change.releases.base import parse_timestamp, strip_revision, try_fetch_json

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
ORIGIN_RELEASE = "github_release"
ORIGIN_TAG = "github_tag"


class GitHubReleaseClient:
    """Find the release matching a version.

    Lookup order: ``releases/tags/<version>``, ``releases/tags/v<version>``,
    the first entry of the releases list whose tag contains the version, and
    finally the git tag ref, whose commit or tag date is turned into a
    minimal release without notes.
    """

    def __init__(self, fetcher: HttpFetcher, *, api_base: str = GITHUB_API_BASE) -> None:
        self._fetcher = fetcher
        self._api_base = api_base.rstrip("/")

    def find_release(self, source: GitHubSource, version: str) -> Release | None:
        tag = strip_revision(version)
        for candidate in _tag_candidates(tag):
            url = self._repo_url(source, "releases/tags", candidate)
            payload = try_fetch_json(self._fetcher, url)
            if isinstance(payload, dict) and payload.get("tag_name"):
                return _release_from_payload(payload)

        listing = try_fetch_json(self._fetcher, f"{self._api_base}/repos/{source.slug}/releases")
        if isinstance(listing, list):
            needle = tag.lower()
            for entry in listing:
                if not isinstance(entry, dict):
                    continue
                if needle in str(entry.get("tag_name", "")).lower():
                    return _release_from_payload(entry)

        return self._release_from_tag(source, tag)

    def _release_from_tag(self, source: GitHubSource, tag: str) -> Release | None:
        for candidate in _tag_candidates(tag):
            ref = try_fetch_json(self._fetcher, self._repo_url(source, "git/refs/tags", candidate))
            if not isinstance(ref, dict):
                continue
            target = ref.get("object")
            object_url = target.get("url") if isinstance(target, dict) else None
            if not object_url:
                continue
            detail = try_fetch_json(self._fetcher, object_url)
            published_at = _object_date(detail)
            if published_at is None:
                continue
            logger.debug("%s: no release for %s, using tag date", source.slug, candidate)
            return Release(
                tag_name=candidate,
                origin=ORIGIN_TAG,
                published_at=published_at,
                html_url=f"{source.web_url}/releases/tag/{candidate}",
            )
        return None

    def _repo_url(self, source: GitHubSource, endpoint: str, tag: str) -> str:
        return f"{self._api_base}/repos/{source.slug}/{endpoint}/{quote(tag, safe='@')}"


def _tag_candidates(tag: str) -> list[str]:
    if tag.startswith("v"):
        return [tag]
    return [tag, f"v{tag}"]


def _release_from_payload(payload: dict[str, Any]) -> Release:
    return Release(
        tag_name=str(payload["tag_name"]),
        origin=ORIGIN_RELEASE,
        published_at=parse_timestamp(payload.get("published_at") or payload.get("created_at")),
        body=payload.get("body") or None,
        html_url=payload.get("html_url") or None,
    )


def _object_date(detail: Any) -> datetime | None:
    if not isinstance(detail, dict):
        return None
    for key in ("committer", "tagger", "author"):
        person = detail.get(key)
        if isinstance(person, dict) and person.get("date"):
            return parse_timestamp(person["date"])
    return None
