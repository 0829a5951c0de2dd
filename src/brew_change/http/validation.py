"""URL allow-list checks, URL canonicalization, and JSON body validation."""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any
from urllib.parse import urlparse, urlunparse

from brew_change.http.errors import NetworkError, ValidationError
from brew_change.http.failure_classifier import FailureKind

ALLOWED_DOMAINS: tuple[str, ...] = (
    "api.github.com",
    "github.com",
    "raw.githubusercontent.com",
    "formulae.brew.sh",
    "registry.npmjs.org",
)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
_FORBIDDEN_SUBSTRINGS: tuple[str, ...] = ("%0a", "%0d")
_FORBIDDEN_SCHEMES: tuple[str, ...] = ("javascript:", "data:", "file:", "vbscript:")
_ERROR_PAYLOAD_KEYS = frozenset({"message", "documentation_url", "errors", "status"})


def validate_url(url: str, allowed_domains: tuple[str, ...] = ALLOWED_DOMAINS) -> str:
    """Return the host of ``url`` or raise ``ValidationError``."""

    if not url or not url.strip():
        raise ValidationError(message="Empty URL provided", url=url)
    if _CONTROL_CHARS_RE.search(url):
        raise ValidationError(message=f"Control characters in URL: {url!r}", url=url)
    lowered = url.lower()
    if lowered.startswith(_FORBIDDEN_SCHEMES):
        raise ValidationError(message=f"Suspicious URL scheme: {url!r}", url=url)
    if any(marker in lowered for marker in _FORBIDDEN_SUBSTRINGS):
        raise ValidationError(message=f"Newline injection in URL: {url!r}", url=url)

    parsed = urlparse(url)
    if parsed.scheme.lower() not in {"http", "https"}:
        raise ValidationError(message=f"Only HTTP/HTTPS URLs are allowed: {url!r}", url=url)
    if "@" in parsed.netloc:
        raise ValidationError(message=f"Credentials are not allowed in URL: {url!r}", url=url)
    host = (parsed.hostname or "").lower().rstrip(".")
    if not host:
        raise ValidationError(message=f"URL has no host: {url!r}", url=url)
    if not is_allowed_host(host, allowed_domains):
        raise ValidationError(message=f"Domain not allowed: {host}", url=url)
    return host


def is_allowed_host(host: str, allowed_domains: tuple[str, ...] = ALLOWED_DOMAINS) -> bool:
    """Exact or subdomain match against the allow-list."""

    host = host.lower()
    return any(host == domain or host.endswith(f".{domain}") for domain in allowed_domains)


def validate_json_payload(text: str, url: str) -> Any:
    """Parse an upstream JSON body, rejecting empty and error-shaped payloads."""

    if not text or not text.strip():
        raise NetworkError(message=f"Empty response from {url}", kind=FailureKind.EMPTY_BODY)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as error:
        raise NetworkError(
            message=f"Invalid JSON response from {url}",
            kind=FailureKind.INVALID_JSON,
        ) from error
    if _is_error_payload(payload):
        message = str(payload.get("message") or "Unknown error")
        if "message" not in payload or "rate limit" in message.lower():
            raise NetworkError(
                message=f"GitHub rate limit exceeded for {url}",
                kind=FailureKind.RATE_LIMITED,
            )
        raise NetworkError(
            message=f"API error response from {url}: {message}",
            kind=FailureKind.API_ERROR,
        )
    return payload


def _is_error_payload(payload: Any) -> bool:
    # Commit and tag objects carry a "message" too; only error-only bodies count.
    if not isinstance(payload, dict) or not payload.keys() & {"message", "documentation_url"}:
        return False
    return set(payload) <= _ERROR_PAYLOAD_KEYS


def canonicalize_url(url: str) -> str:
    """Normalize URL so equivalent requests share one cache entry."""

    parsed = urlparse(url.strip())
    scheme = (parsed.scheme or "https").lower()
    netloc = parsed.netloc.lower()
    if netloc.endswith(":80") and scheme == "http":
        netloc = netloc[:-3]
    if netloc.endswith(":443") and scheme == "https":
        netloc = netloc[:-4]
    netloc = netloc.rstrip(".")

    path = parsed.path or "/"
    normalized_path = re.sub(r"/{2,}", "/", path)
    normalized_query = "&".join(
        sorted(filter(None, parsed.query.split("&"))),
    )
    cleaned = parsed._replace(
        scheme=scheme,
        netloc=netloc,
        path=normalized_path,
        params="",
        query=normalized_query,
        fragment="",
    )
    return str(urlunparse(cleaned))


def url_hash(url: str) -> str:
    """Stable SHA-256 of the canonical URL."""

    return hashlib.sha256(canonicalize_url(url).encode("utf-8")).hexdigest()


def extract_domain(url: str | None) -> str | None:
    """Host of ``url`` without a leading ``www.``, ``None`` when absent."""

    if not url:
        return None
    host = (urlparse(url.strip()).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None
