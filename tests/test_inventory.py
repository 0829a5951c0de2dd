from __future__ import annotations

import json
import subprocess
from typing import Any

import allure
import pytest

from brew_change.inventory import (
    BrewInventory,
    InventoryError,
    parse_info_payload,
    parse_outdated_payload,
    validate_package_name,
)
from brew_change.models import PackageKind, PackageMetadata, PackageTask

pytestmark = [
    allure.epic("Inventory"),
    allure.feature("brew CLI"),
]

OUTDATED = {
    "formulae": [
        {
            "name": "gh",
            "installed_versions": ["2.39.0", "2.39.1"],
            "current_version": "2.40.0",
        },
        {"name": "", "installed_versions": ["1"], "current_version": "2"},
    ],
    "casks": [
        {"name": "rocket", "installed_versions": ["1.0"], "current_version": "1.1"},
    ],
}
INFO = {
    "formulae": [
        {
            "name": "ripgrep",
            "full_name": "ripgrep",
            "homepage": "https://github.com/BurntSushi/ripgrep",
            "urls": {"stable": {"url": "https://github.com/BurntSushi/ripgrep/a.tgz"}},
            "versions": {"stable": "14.1.0"},
            "installed": [{"version": "14.0.0"}, {"version": "14.0.3"}],
        },
    ],
    "casks": [
        {
            "token": "rocket",
            "full_token": "acme/tap/rocket",
            "installed": None,
            "version": "1.1",
            "url": "https://downloads.example.org/rocket.dmg",
            "homepage": "https://rocket.example.org",
        },
    ],
}


class FakeRunner:
    def __init__(self, *, stdout: str = "", returncode: int = 0, error: Exception | None = None):
        self.stdout = stdout
        self.returncode = returncode
        self.error = error
        self.calls: list[list[str]] = []

    def __call__(self, command: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        self.calls.append(command)
        assert kwargs["capture_output"] is True
        assert kwargs["check"] is False
        if self.error is not None:
            raise self.error
        return subprocess.CompletedProcess(
            command,
            self.returncode,
            stdout=self.stdout,
            stderr="Error: No available formula" if self.returncode else "",
        )


def test_outdated_preserves_brew_order() -> None:
    runner = FakeRunner(stdout=json.dumps(OUTDATED))

    tasks = BrewInventory(runner=runner).outdated()

    assert runner.calls == [["brew", "outdated", "--json=v2"]]
    assert tasks == [
        PackageTask(
            name="gh",
            kind=PackageKind.FORMULA,
            installed_version="2.39.1",
            target_version="2.40.0",
        ),
        PackageTask(
            name="rocket",
            kind=PackageKind.CASK,
            installed_version="1.0",
            target_version="1.1",
        ),
    ]


def test_info_validates_names_before_running() -> None:
    runner = FakeRunner(stdout=json.dumps(INFO))

    with pytest.raises(InventoryError) as excinfo:
        BrewInventory(runner=runner).info(["ripgrep", "../etc/passwd"])

    assert excinfo.value.code == "invalid_name"
    assert runner.calls == []


def test_info_parses_formulae_and_casks() -> None:
    runner = FakeRunner(stdout=json.dumps(INFO))

    tasks = BrewInventory(runner=runner).info(["ripgrep", "acme/tap/rocket"])

    assert runner.calls == [["brew", "info", "--json=v2", "ripgrep", "acme/tap/rocket"]]
    assert [(task.name, task.installed_version, task.target_version) for task in tasks] == [
        ("ripgrep", "14.0.3", "14.1.0"),
        ("acme/tap/rocket", None, "1.1"),
    ]
    assert tasks[1].tap == "acme/tap"
    assert tasks[1].is_outdated


def test_metadata_from_brew_info() -> None:
    runner = FakeRunner(stdout=json.dumps({"formulae": [], "casks": INFO["casks"]}))
    task = parse_info_payload(INFO)[1]

    metadata = BrewInventory(runner=runner).metadata(task)

    assert metadata == PackageMetadata(
        homepage="https://rocket.example.org",
        source_url="https://downloads.example.org/rocket.dmg",
        latest_version="1.1",
    )


def test_metadata_failure_returns_none() -> None:
    runner = FakeRunner(returncode=1)
    task = parse_info_payload(INFO)[0]

    assert BrewInventory(runner=runner).metadata(task) is None


@pytest.mark.parametrize(
    ("runner", "code", "message"),
    [
        (FakeRunner(error=FileNotFoundError(2, "No such file")), "brew_missing", "Cannot run"),
        (FakeRunner(error=subprocess.TimeoutExpired("brew", 120)), "inventory", "timed out"),
        (FakeRunner(returncode=1), "inventory", "No available formula"),
        (FakeRunner(stdout="not json"), "inventory", "Cannot parse"),
    ],
)
def test_brew_failures_raise_inventory_error(runner: FakeRunner, code: str, message: str) -> None:
    with pytest.raises(InventoryError, match=message) as excinfo:
        BrewInventory(runner=runner).outdated()

    assert excinfo.value.code == code


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("gh", "gh"),
        ("  node@20 ", "node@20"),
        ("homebrew/cask/visual-studio-code", "homebrew/cask/visual-studio-code"),
        ("lib\x00name", "libname"),
    ],
)
def test_valid_package_names(name: str, expected: str) -> None:
    assert validate_package_name(name) == expected


@pytest.mark.parametrize(
    "name",
    ["", "  ", "../secret", "/usr/bin/env", "~/x", "gh; rm -rf /", "$(whoami)", "a" * 101],
)
def test_invalid_package_names(name: str) -> None:
    with pytest.raises(InventoryError):
        validate_package_name(name)


def test_unexpected_payload_shape() -> None:
    with pytest.raises(InventoryError):
        parse_outdated_payload([])
    with pytest.raises(InventoryError):
        parse_info_payload("nope")
