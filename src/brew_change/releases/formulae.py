"""Homebrew formulae API metadata."""

from __future__ import annotations

from typing import Any

from brew_change.http.fetcher import HttpFetcher
from brew_change.models import PackageKind, PackageMetadata, PackageTask

FORMULAE_API_BASE = "https://formulae.brew.sh/api"


class FormulaeApiClient:
    """Homepage, download URL, and latest version for a formula or cask."""

    def __init__(self, fetcher: HttpFetcher, *, api_base: str = FORMULAE_API_BASE) -> None:
        self._fetcher = fetcher
        self._api_base = api_base.rstrip("/")

    def metadata_url(self, task: PackageTask) -> str:
        return f"{self._api_base}/{task.kind.value}/{task.base_name}.json"

    def metadata(self, task: PackageTask) -> PackageMetadata:
        payload = self._fetcher.fetch_json(self.metadata_url(task))
        return parse_metadata(payload, task.kind)


def parse_metadata(payload: Any, kind: PackageKind) -> PackageMetadata:
    """Extract URLs and version from a formulae API document."""

    if not isinstance(payload, dict):
        return PackageMetadata()
    if kind is PackageKind.CASK:
        source_url = payload.get("url")
        latest = payload.get("version")
    else:
        stable = (payload.get("urls") or {}).get("stable") or {}
        source_url = stable.get("url") if isinstance(stable, dict) else None
        latest = (payload.get("versions") or {}).get("stable")
    return PackageMetadata(
        homepage=_text(payload.get("homepage")),
        source_url=_text(source_url),
        latest_version=_text(latest),
    )


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip() and value != "null":
        return value.strip()
    return None
