"""Fetch and cache identity-provider key sets as PEM certificates."""

from __future__ import annotations

import os
import threading
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from idtoken.cache import KeyCache, NoKeyCache
from idtoken.exceptions import KeyFetchError

DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=5.0, write=5.0, pool=5.0)
PEM_LINE_LENGTH = 64

logger = structlog.get_logger(__name__)


def convert_cert_to_pem(cert: str) -> str:
    """Wrap a raw base64 DER certificate in PEM armor."""
    body = "".join(
        cert[offset : offset + PEM_LINE_LENGTH] + os.linesep
        for offset in range(0, len(cert), PEM_LINE_LENGTH)
    )
    return f"-----BEGIN CERTIFICATE-----{os.linesep}{body}-----END CERTIFICATE-----{os.linesep}"


def extract_pem_keys(document: Any) -> tuple[dict[str, str], int]:
    """Return kid -> PEM mapping for usable keys and the number of skipped entries."""
    if not isinstance(document, dict):
        return {}, 0
    entries = document.get("keys")
    if not isinstance(entries, list):
        return {}, 0

    keys: dict[str, str] = {}
    skipped = 0
    for entry in entries:
        if not isinstance(entry, dict):
            skipped += 1
            continue
        kid = entry.get("kid")
        chain = entry.get("x5c")
        if not isinstance(kid, str) or not kid:
            skipped += 1
            continue
        if not isinstance(chain, list) or not chain:
            skipped += 1
            continue
        first_cert = chain[0]
        if not isinstance(first_cert, str) or not first_cert:
            skipped += 1
            continue
        keys[kid] = convert_cert_to_pem(first_cert)
    return keys, skipped


class JwksFetcher:
    """Resolve the signing certificates published at one key-set URL."""

    def __init__(
        self,
        jwks_url: str,
        cache: KeyCache | None = None,
        http_options: Mapping[str, Any] | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Create fetcher with optional shared cache and transport options."""
        self.jwks_url = jwks_url
        self._cache = cache if cache is not None else NoKeyCache()
        self._owns_client = http_client is None
        if http_client is None:
            options = dict(http_options or {})
            options.setdefault("timeout", DEFAULT_TIMEOUT)
            http_client = httpx.Client(**options)
        self._client = http_client
        self._lock = threading.Lock()

    def fetch_keys(self) -> dict[str, str]:
        """Return kid -> PEM certificate mapping, using the cache when populated."""
        cached = self._cache.get(self.jwks_url)
        if cached is not None:
            logger.debug("jwks_cache_hit", jwks_url=self.jwks_url)
            return cached

        with self._lock:
            cached = self._cache.get(self.jwks_url)
            if cached is not None:
                logger.debug("jwks_cache_hit", jwks_url=self.jwks_url)
                return cached

            document = self._request_jwks()
            keys, skipped = extract_pem_keys(document)
            logger.info(
                "jwks_fetched",
                jwks_url=self.jwks_url,
                key_count=len(keys),
                skipped_count=skipped,
            )
            if keys:
                self._cache.put(self.jwks_url, keys)
            return keys

    def close(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> JwksFetcher:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit context manager and close managed resources."""
        del exc_type, exc, tb
        self.close()

    def _request_jwks(self) -> Any:
        """GET the key-set document; malformed bodies come back as None."""
        try:
            response = self._client.get(self.jwks_url)
        except httpx.RequestError as exc:
            logger.warning("jwks_fetch_failed", jwks_url=self.jwks_url, error=str(exc))
            raise KeyFetchError(f"Unable to fetch JWKS from {self.jwks_url}.") from exc

        if not response.is_success:
            logger.warning(
                "jwks_fetch_failed",
                jwks_url=self.jwks_url,
                status_code=response.status_code,
            )
            raise KeyFetchError(
                f"JWKS request failed with status {response.status_code}.",
                response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return None
