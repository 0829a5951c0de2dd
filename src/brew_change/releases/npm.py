"""npm registry release dates."""

from __future__ import annotations

from brew_change.http.fetcher import HttpFetcher
from brew_change.models import Release
from brew_change.releases.base import parse_timestamp, strip_revision, try_fetch_json

NPM_REGISTRY_BASE = "https://registry.npmjs.org"
NPM_WEB_BASE = "https://www.npmjs.com/package"
ORIGIN_NPM = "npm"


class NpmRegistryClient:
    """Publication metadata for one version of an npm package."""

    def __init__(self, fetcher: HttpFetcher, *, registry_base: str = NPM_REGISTRY_BASE) -> None:
        self._fetcher = fetcher
        self._registry_base = registry_base.rstrip("/")

    def find_release(self, name: str, version: str) -> Release | None:
        """Release synthesized from the registry ``time`` map, ``None`` when unpublished."""

        version = strip_revision(version)
        payload = try_fetch_json(self._fetcher, f"{self._registry_base}/{name}")
        if not isinstance(payload, dict):
            return None
        times = payload.get("time")
        if not isinstance(times, dict):
            return None
        published_at = parse_timestamp(times.get(version))
        if published_at is None:
            return None
        return Release(
            tag_name=version,
            origin=ORIGIN_NPM,
            published_at=published_at,
            body=f"Release {version} published to npm registry",
            html_url=f"{NPM_WEB_BASE}/{name}/v/{version}",
        )
