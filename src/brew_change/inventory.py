"""Package inventory read from the local ``brew`` command."""

from __future__ import annotations

import json
import logging
import re
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from brew_change.models import PackageKind, PackageMetadata, PackageTask

logger = logging.getLogger(__name__)

MAX_PACKAGE_NAME_LENGTH = 100
DEFAULT_BREW_TIMEOUT_SECONDS = 120
_PACKAGE_NAME_RE = re.compile(r"^[a-zA-Z0-9._/@-]+$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")

Runner = Callable[..., subprocess.CompletedProcess[str]]


@dataclass(slots=True)
class InventoryError(Exception):
    """``brew`` is unavailable, failed, or produced output we cannot parse."""

    message: str
    code: str = "inventory"

    def __str__(self) -> str:
        return self.message


def validate_package_name(name: str) -> str:
    """Return the cleaned package name or raise ``InventoryError``."""

    cleaned = _CONTROL_CHARS_RE.sub("", name or "").strip()
    if not cleaned:
        raise InventoryError(message="Package name cannot be empty", code="invalid_name")
    if "../" in cleaned or "..\\" in cleaned or cleaned.startswith(("/", "~/")):
        raise InventoryError(
            message=f"Invalid characters in package name (potential path traversal): {cleaned}",
            code="invalid_name",
        )
    if not _PACKAGE_NAME_RE.match(cleaned):
        raise InventoryError(
            message=(
                f"Invalid package name format: {cleaned}. Package names may contain only "
                "letters, numbers, dots, underscores, hyphens, at symbols, and slashes."
            ),
            code="invalid_name",
        )
    if len(cleaned) > MAX_PACKAGE_NAME_LENGTH:
        raise InventoryError(
            message=f"Package name too long (max {MAX_PACKAGE_NAME_LENGTH} characters): {cleaned}",
            code="invalid_name",
        )
    return cleaned


def parse_outdated_payload(payload: Any) -> list[PackageTask]:
    """Tasks from ``brew outdated --json=v2`` output, formulae before casks."""

    if not isinstance(payload, dict):
        raise InventoryError(message="Unexpected brew outdated output")
    tasks: list[PackageTask] = []
    for key, kind in (("formulae", PackageKind.FORMULA), ("casks", PackageKind.CASK)):
        for entry in payload.get(key) or []:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            tasks.append(
                PackageTask(
                    name=str(entry["name"]),
                    kind=kind,
                    installed_version=_last_version(entry.get("installed_versions")),
                    target_version=_text(entry.get("current_version")),
                ),
            )
    return tasks


def parse_info_payload(payload: Any) -> list[PackageTask]:
    """Tasks from ``brew info --json=v2`` output."""

    if not isinstance(payload, dict):
        raise InventoryError(message="Unexpected brew info output")
    tasks: list[PackageTask] = []
    for entry in payload.get("formulae") or []:
        if not isinstance(entry, dict):
            continue
        installed = entry.get("installed") or []
        installed_version = None
        if installed and isinstance(installed[-1], dict):
            installed_version = _text(installed[-1].get("version"))
        tasks.append(
            PackageTask(
                name=str(entry.get("full_name") or entry.get("name")),
                kind=PackageKind.FORMULA,
                installed_version=installed_version,
                target_version=_text((entry.get("versions") or {}).get("stable")),
            ),
        )
    for entry in payload.get("casks") or []:
        if not isinstance(entry, dict):
            continue
        tasks.append(
            PackageTask(
                name=str(entry.get("full_token") or entry.get("token")),
                kind=PackageKind.CASK,
                installed_version=_text(entry.get("installed")),
                target_version=_text(entry.get("version")),
            ),
        )
    return tasks


def parse_info_metadata(payload: Any) -> PackageMetadata | None:
    """Homepage and download URL from ``brew info --json=v2`` for one package."""

    if not isinstance(payload, dict):
        return None
    for entry in payload.get("formulae") or []:
        if isinstance(entry, dict):
            stable = (entry.get("urls") or {}).get("stable") or {}
            return PackageMetadata(
                homepage=_text(entry.get("homepage")),
                source_url=_text(stable.get("url")),
                latest_version=_text((entry.get("versions") or {}).get("stable")),
            )
    for entry in payload.get("casks") or []:
        if isinstance(entry, dict):
            return PackageMetadata(
                homepage=_text(entry.get("homepage")),
                source_url=_text(entry.get("url")),
                latest_version=_text(entry.get("version")),
            )
    return None


class BrewInventory:
    """Thin wrapper over ``brew outdated`` and ``brew info``."""

    def __init__(
        self,
        *,
        executable: str = "brew",
        runner: Runner = subprocess.run,
        timeout_seconds: int = DEFAULT_BREW_TIMEOUT_SECONDS,
    ) -> None:
        self._executable = executable
        self._runner = runner
        self._timeout_seconds = timeout_seconds

    def outdated(self) -> list[PackageTask]:
        return parse_outdated_payload(self._run_json(["outdated", "--json=v2"]))

    def info(self, names: Sequence[str]) -> list[PackageTask]:
        validated = [validate_package_name(name) for name in names]
        if not validated:
            return []
        return parse_info_payload(self._run_json(["info", "--json=v2", *validated]))

    def metadata(self, task: PackageTask) -> PackageMetadata | None:
        """Local metadata for packages the public formulae API does not know."""

        try:
            payload = self._run_json(["info", "--json=v2", task.name])
        except InventoryError as error:
            logger.debug("brew info unavailable for %s: %s", task.name, error)
            return None
        return parse_info_metadata(payload)

    def _run_json(self, args: list[str]) -> Any:
        command = [self._executable, *args]
        try:
            completed = self._runner(  # noqa: S603
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=self._timeout_seconds,
            )
        except subprocess.TimeoutExpired as error:
            raise InventoryError(message=f"`{' '.join(command)}` timed out") from error
        except OSError as error:
            raise InventoryError(
                message=f"Cannot run {self._executable}: {error}",
                code="brew_missing",
            ) from error
        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip()
            raise InventoryError(
                message=(
                    f"`{' '.join(command)}` failed with exit code "
                    f"{completed.returncode}: {stderr}"
                ),
            )
        try:
            return json.loads(completed.stdout or "")
        except json.JSONDecodeError as error:
            raise InventoryError(message=f"Cannot parse `{' '.join(command)}` output") from error


def _last_version(value: Any) -> str | None:
    if isinstance(value, list):
        return _text(value[-1]) if value else None
    return _text(value)


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
