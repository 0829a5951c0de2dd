"""Upstream changelogs for outdated Homebrew packages."""

__version__ = "1.0.0"
