"""Plain-text rendering of one package's changelog."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from brew_change.http.validation import extract_domain
from brew_change.models import (
    GenericSource,
    PackageMetadata,
    PackageTask,
    Release,
    Resolution,
    TaskStatus,
)
from brew_change.releases.npm import ORIGIN_NPM

_ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_SOURCEFORGE_PROJECT_RE = re.compile(r"sourceforge\.net/(?:projects?/)?(?P<project>[^/]+)/")

NOT_INSTALLED = "[not installed]"
UNKNOWN_VERSION = "unknown"
NO_RELEASE_DATE = "no release date"


@dataclass(frozen=True, slots=True)
class RenderedOutput:
    text: str
    status: TaskStatus


def sanitize_output(text: str) -> str:
    """Strip ANSI escape sequences and control characters, keeping newlines and tabs."""

    return _CONTROL_CHARS_RE.sub("", _ANSI_ESCAPE_RE.sub("", text))


def format_relative_time(moment: datetime, now: datetime) -> str:
    seconds = int((now - moment).total_seconds())
    seconds = max(seconds, 0)
    if seconds < 3_600:
        return f"{seconds // 60} minutes ago"
    if seconds < 86_400:
        return f"{seconds // 3_600} hours ago"
    if seconds < 604_800:
        return f"{seconds // 86_400} days ago"
    return moment.strftime("%Y-%m-%d")


def construct_project_page_url(package_name: str, source_url: str | None) -> str | None:
    """Best-guess human-facing project page for a non-GitHub download URL."""

    domain = extract_domain(source_url)
    if not domain or not source_url:
        return None
    if domain in {"downloads.sourceforge.net", "sourceforge.net"}:
        match = _SOURCEFORGE_PROJECT_RE.search(source_url)
        if match:
            return f"https://sourceforge.net/projects/{match.group('project')}/"
    if domain in {"cdn.crabnebula.app", "crabnebula.app"}:
        return f"https://crabnebula.app/packages/{package_name}"
    if domain in {"downloads.factory.ai", "factory.ai"}:
        return f"https://factory.ai/packages/{package_name}"
    return f"https://{domain}/"


class TextRenderer:
    """Render a task outcome as the block of text shown to the user."""

    def __init__(self, *, now: Callable[[], datetime] | None = None) -> None:
        self._now = now or (lambda: datetime.now(UTC))

    def header(self, task: PackageTask, release: Release | None = None) -> str:
        current = task.installed_version or NOT_INSTALLED
        target = task.target_version or UNKNOWN_VERSION
        when = NO_RELEASE_DATE
        if release is not None and release.published_at is not None:
            when = format_relative_time(release.published_at, self._now())
        return f"📦 {task.name}: {current} → {target} ({when})"

    def render_up_to_date(self, task: PackageTask) -> RenderedOutput:
        version = task.installed_version or task.target_version or UNKNOWN_VERSION
        lines = [
            f"📦 {task.name}: {version} → {version}",
            "",
            f"Already up to date at version {version} ✓",
        ]
        return RenderedOutput(text="\n".join(lines), status=TaskStatus.NO_NEW_VERSION)

    def render(
        self,
        task: PackageTask,
        resolution: Resolution,
        release: Release | None,
        metadata: PackageMetadata,
    ) -> RenderedOutput:
        lines = [self.header(task, release), ""]
        if release is not None and release.body and release.body.strip():
            lines.append(sanitize_output(release.body).strip())
            if release.html_url:
                lines.extend(["", f"📋 Release: {release.html_url}"])
            # npm bodies are synthesized, not upstream notes
            status = TaskStatus.NO_NOTES if release.origin == ORIGIN_NPM else TaskStatus.NOTES_FOUND
            return RenderedOutput(text="\n".join(lines), status=status)

        if release is not None:
            lines.append("Release note has no details.")
            if isinstance(resolution.source, GenericSource):
                lines.append(f"Non-GitHub package via: {resolution.source.domain}")
            if release.html_url:
                lines.extend(["", f"📋 Release: {release.html_url}"])
            return RenderedOutput(text="\n".join(lines), status=TaskStatus.NO_NOTES)

        github = resolution.github
        if github is not None:
            lines.append(f"No release notes found for {task.target_version or UNKNOWN_VERSION}")
            lines.extend(["", f"🌐 Learn more: {github.web_url}"])
            return RenderedOutput(text="\n".join(lines), status=TaskStatus.NO_NOTES)

        lines.extend(["🚫 No release notes available.", ""])
        lines.append(self._learn_more(task, metadata))
        return RenderedOutput(text="\n".join(lines), status=TaskStatus.NO_NOTES)

    def _learn_more(self, task: PackageTask, metadata: PackageMetadata) -> str:
        homepage = metadata.homepage
        if homepage:
            if homepage.startswith("http://"):
                homepage = "https://" + homepage.removeprefix("http://")
            return f"🌐 Learn more: {homepage}"
        project_url = construct_project_page_url(task.base_name, metadata.source_url)
        if project_url:
            return f"🌐 Learn more: {project_url}"
        return f"🌐 Package: More info available via 'brew info {task.name}'"


def render_failure(task: PackageTask) -> str:
    return "\n".join(
        [
            f"Error: Failed to process package '{task.name}'",
            "This package will be skipped, but other packages will continue processing.",
        ],
    )
