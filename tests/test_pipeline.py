from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest
from conftest import route_handler

from brew_change.config import CacheSettings, DiscoverySettings, Settings
from brew_change.controllers import build_pipeline
from brew_change.models import PackageKind, PackageMetadata, PackageTask, TaskStatus

pytestmark = [
    allure.epic("Pipeline"),
    allure.feature("Package Changelog"),
]

FORMULAE = "https://formulae.brew.sh/api"
API = "https://api.github.com/repos"


def _task(name: str, installed: str | None = "1.0.0", target: str | None = "1.1.0", kind=None):
    return PackageTask(
        name=name,
        kind=kind or PackageKind.FORMULA,
        installed_version=installed,
        target_version=target,
    )


def _settings(tmp_path: Path, *, docs_repo: bool = False) -> Settings:
    return Settings(
        cache=CacheSettings(cache_dir=tmp_path / "patterns"),
        discovery=DiscoverySettings(docs_repo_enabled=docs_repo),
    )


@pytest.fixture()
def pipeline_factory(fetcher_factory, tmp_path: Path):
    def _make(routes, *, docs_repo: bool = False, fallback=None):
        harness = fetcher_factory(route_handler(routes))
        pipeline = build_pipeline(_settings(tmp_path, docs_repo=docs_repo), harness.fetcher)
        pipeline.metadata_fallback = fallback
        return harness, pipeline

    return _make


def test_github_release_notes(pipeline_factory) -> None:
    harness, pipeline = pipeline_factory(
        {
            f"{FORMULAE}/formula/widget.json": {
                "homepage": "https://github.com/acme/widget",
                "urls": {"stable": {"url": "https://github.com/acme/widget/archive/1.1.0.tgz"}},
                "versions": {"stable": "1.1.0"},
            },
            f"{API}/acme/widget/releases/tags/1.1.0": {"tag_name": "1.1.0", "body": "- one"},
        },
    )

    output = pipeline.process(_task("widget"))

    assert output.status == TaskStatus.NOTES_FOUND
    assert output.text.splitlines()[0] == "📦 widget: 1.0.0 → 1.1.0 (no release date)"
    assert "- one" in output.text
    assert harness.urls == [
        f"{FORMULAE}/formula/widget.json",
        f"{API}/acme/widget/releases/tags/1.1.0",
    ]


def test_hybrid_takes_date_from_registry_and_notes_from_github(pipeline_factory) -> None:
    tarball = "https://registry.npmjs.org/@acme/cli/-/cli-2.0.0.tgz"
    harness, pipeline = pipeline_factory(
        {
            f"{FORMULAE}/formula/acme-cli.json": {
                "homepage": "https://github.com/acme/cli",
                "urls": {"stable": {"url": tarball}},
                "versions": {"stable": "2.0.0"},
            },
            "https://registry.npmjs.org/@acme/cli": {
                "time": {"2.0.0": "2020-01-15T08:00:00.000Z"},
            },
            f"{API}/acme/cli/releases/tags/v2.0.0": {
                "tag_name": "v2.0.0",
                "body": "Hybrid notes",
                "published_at": "2020-03-01T00:00:00Z",
            },
        },
    )

    output = pipeline.process(_task("acme-cli", installed="1.9.0", target="2.0.0"))

    assert output.status == TaskStatus.NOTES_FOUND
    assert "(2020-01-15)" in output.text.splitlines()[0]
    assert "Hybrid notes" in output.text
    assert "https://registry.npmjs.org/@acme/cli" in harness.urls


def test_registry_only_package_is_no_notes(pipeline_factory) -> None:
    _, pipeline = pipeline_factory(
        {
            f"{FORMULAE}/formula/typescript.json": {
                "homepage": "https://www.typescriptlang.org/",
                "urls": {
                    "stable": {
                        "url": "https://registry.npmjs.org/typescript/-/typescript-5.4.0.tgz",
                    },
                },
            },
            "https://registry.npmjs.org/typescript": {
                "time": {"5.4.0": "2024-03-06T17:00:00.000Z"},
            },
        },
    )

    output = pipeline.process(_task("typescript", installed="5.3.0", target="5.4.0"))

    assert output.status == TaskStatus.NO_NOTES
    assert "Release 5.4.0 published to npm registry" in output.text


def test_up_to_date_package_makes_no_requests(pipeline_factory) -> None:
    harness, pipeline = pipeline_factory({})

    output = pipeline.process(_task("widget", installed="1.1.0", target="1.1.0"))

    assert output.status == TaskStatus.NO_NEW_VERSION
    assert harness.requests == []


def test_missing_target_version_comes_from_metadata(pipeline_factory) -> None:
    _, pipeline = pipeline_factory(
        {
            f"{FORMULAE}/cask/rocket.json": {
                "homepage": "https://rocket.example.org/",
                "url": "https://downloads.example.org/rocket-1.0.0.dmg",
                "version": "1.0.0",
            },
        },
    )

    output = pipeline.process(_task("rocket", target=None, kind=PackageKind.CASK))

    assert output.status == TaskStatus.NO_NEW_VERSION
    assert "Already up to date at version 1.0.0" in output.text


def test_metadata_fallback_used_when_api_misses(pipeline_factory) -> None:
    calls: list[str] = []

    def _fallback(task: PackageTask) -> PackageMetadata:
        calls.append(task.name)
        return PackageMetadata(homepage="http://tool.example.org/")

    _, pipeline = pipeline_factory({}, fallback=_fallback)

    output = pipeline.process(_task("acme/tap/tool"))

    assert calls == ["acme/tap/tool"]
    assert output.status == TaskStatus.NO_NOTES
    assert output.text.splitlines()[2:] == [
        "🚫 No release notes available.",
        "",
        "🌐 Learn more: https://tool.example.org/",
    ]


def test_no_metadata_at_all_logs_warning(pipeline_factory, caplog) -> None:
    _, pipeline = pipeline_factory({})

    with caplog.at_level("WARNING", logger="brew_change.pipeline"):
        output = pipeline.process(_task("ghost"))

    assert "No package metadata available for ghost" in caplog.text
    assert output.text.endswith("More info available via 'brew info ghost'")


def test_github_source_without_release(pipeline_factory) -> None:
    _, pipeline = pipeline_factory(
        {
            f"{FORMULAE}/formula/widget.json": {"homepage": "https://github.com/acme/widget"},
        },
    )

    output = pipeline.process(_task("widget"))

    assert output.status == TaskStatus.NO_NOTES
    assert "No release notes found for 1.1.0" in output.text


def test_homepage_scan_prefers_changelog(pipeline_factory, tmp_path: Path) -> None:
    homepage = "https://formulae.brew.sh/cask/docs-tool"
    raw = "https://raw.githubusercontent.com/acme/docs-tool/main/CHANGELOG.md"
    harness, pipeline = pipeline_factory(
        {
            f"{FORMULAE}/cask/docs-tool.json": {"homepage": homepage, "version": "1.1.0"},
            homepage: '<a href="https://github.com/acme/docs-tool">source</a>',
            raw: "# Changes\n\n## 1.1.0\n- documented change\n\n## 1.0.0\n- first\n",
        },
        docs_repo=True,
    )

    output = pipeline.process(_task("docs-tool", kind=PackageKind.CASK))

    assert output.status == TaskStatus.NOTES_FOUND
    assert "- documented change" in output.text
    assert "- first" not in output.text
    assert "📋 Release: https://github.com/acme/docs-tool/blob/main/CHANGELOG.md" in output.text
    assert not any("/releases" in url for url in harness.urls)
    assert (tmp_path / "patterns" / "github-patterns.json").exists()


def test_render_dates_are_relative_for_recent_releases(pipeline_factory) -> None:
    published = datetime.now(UTC).replace(microsecond=0).isoformat()
    _, pipeline = pipeline_factory(
        {
            f"{FORMULAE}/formula/widget.json": {"homepage": "https://github.com/acme/widget"},
            f"{API}/acme/widget/releases/tags/1.1.0": {
                "tag_name": "1.1.0",
                "body": "fresh",
                "published_at": published,
            },
        },
    )

    output = pipeline.process(_task("widget"))

    assert "minutes ago)" in output.text.splitlines()[0]


def test_scanned_link_without_release_is_not_remembered(pipeline_factory, tmp_path: Path) -> None:
    homepage = "https://formulae.brew.sh/cask/rocket"
    harness, pipeline = pipeline_factory(
        {
            f"{FORMULAE}/cask/rocket.json": {"homepage": homepage, "version": "1.1.0"},
            homepage: '<a href="https://github.com/sponsors/rocket-dev">Sponsor</a>',
        },
        docs_repo=True,
    )

    output = pipeline.process(_task("rocket", kind=PackageKind.CASK))

    assert output.status == TaskStatus.NO_NOTES
    assert f"{API}/sponsors/rocket-dev/releases/tags/1.1.0" in harness.urls
    assert not (tmp_path / "patterns" / "github-patterns.json").exists()


def test_stale_mapping_falls_back_to_fresh_scan(pipeline_factory, tmp_path: Path) -> None:
    homepage = "https://formulae.brew.sh/cask/rocket"
    patterns = tmp_path / "patterns" / "github-patterns.json"
    patterns.parent.mkdir(parents=True)
    patterns.write_text(
        json.dumps(
            {
                "rocket": {
                    "homepage": homepage,
                    "github": "sponsors/rocket-dev",
                    "discovered": "2024-01-01",
                    "success_count": 1,
                },
            },
        ),
        encoding="utf-8",
    )
    harness, pipeline = pipeline_factory(
        {
            f"{FORMULAE}/cask/rocket.json": {"homepage": homepage, "version": "1.1.0"},
            homepage: '<a href="https://github.com/rocket-org/rocket">Source</a>',
            f"{API}/rocket-org/rocket/releases/tags/v1.1.0": {
                "tag_name": "v1.1.0",
                "body": "Real notes",
                "html_url": "https://github.com/rocket-org/rocket/releases/tag/v1.1.0",
            },
        },
        docs_repo=True,
    )

    output = pipeline.process(_task("rocket", kind=PackageKind.CASK))

    assert output.status == TaskStatus.NOTES_FOUND
    assert "Real notes" in output.text
    assert harness.urls.index(homepage) > harness.urls.index(
        f"{API}/sponsors/rocket-dev/releases/tags/1.1.0",
    )
    saved = json.loads(patterns.read_text(encoding="utf-8"))
    assert saved["rocket"]["github"] == "rocket-org/rocket"
    assert saved["rocket"]["success_count"] == 2
