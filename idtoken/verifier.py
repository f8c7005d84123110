"""Identity token verifiers composing key resolution, signature and claim checks."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import Any

from jose import jwt
from jose.exceptions import JOSEError

from idtoken.cache import KeyCache, TTLKeyCache
from idtoken.claims import INVALID_ISS, MISSING_AZP, ClaimRules, validate_claims
from idtoken.config import MultiVerifierConfig, VerifierConfig, get_settings
from idtoken.exceptions import InvalidTokenError, SignatureError
from idtoken.jwks import JwksFetcher
from idtoken.signature import verify_signature
from idtoken.types import ClaimSet, KeyMaterial


class IdTokenVerifier:
    """Verify tokens from one issuer, signed with one configured algorithm."""

    def __init__(self, config: VerifierConfig, now: Callable[[], float] | None = None) -> None:
        self._config = config
        self._rules = ClaimRules(
            issuer=config.issuer,
            audiences=(config.client_id,),
            check_expiry=config.check_expiry,
            leeway=config.leeway,
            now=now or time.time,
        )

    @classmethod
    def from_options(
        cls,
        options: Mapping[str, Any],
        jwks_fetcher: JwksFetcher | None = None,
        now: Callable[[], float] | None = None,
    ) -> IdTokenVerifier:
        """Validate options eagerly and build a verifier."""
        return cls(VerifierConfig.from_options(options, jwks_fetcher=jwks_fetcher), now=now)

    @property
    def config(self) -> VerifierConfig:
        return self._config

    def decode(self, token: str) -> ClaimSet:
        """Return the token's claims once signature and claims are valid.

        Raises InvalidTokenError for any rejected token. KeyFetchError from a
        remote key set propagates unchanged.
        """
        key = self._config.key_source.resolve()
        try:
            claims = verify_signature(token, [self._config.algorithm], key)
        except SignatureError as exc:
            raise InvalidTokenError(exc.detail) from exc
        return validate_claims(claims, self._rules)


class JWTVerifier:
    """Verify tokens from any authorized issuer with any supported algorithm.

    The unverified ``alg`` header and ``iss`` claim are read only to select
    which key and expected issuer apply; trust is established afterwards by
    the signature check and the ordered claim validation.
    """

    def __init__(
        self, config: MultiVerifierConfig, now: Callable[[], float] | None = None
    ) -> None:
        self._config = config
        self._now = now or time.time
        self._fetchers: dict[str, JwksFetcher] = {}
        self._fetchers_lock = threading.Lock()

    @classmethod
    def from_options(
        cls,
        options: Mapping[str, Any],
        cache: KeyCache | None = None,
        http_options: Mapping[str, Any] | None = None,
        now: Callable[[], float] | None = None,
    ) -> JWTVerifier:
        """Validate options eagerly and build a verifier."""
        config = MultiVerifierConfig.from_options(
            options, cache=cache, http_options=http_options
        )
        return cls(config, now=now)

    @property
    def config(self) -> MultiVerifierConfig:
        return self._config

    def verify_and_decode(self, token: str) -> ClaimSet:
        """Return the token's claims once signature and claims are valid."""
        algorithm = self._select_algorithm(token)
        issuer = self._select_issuer(token)
        key = self._resolve_key(algorithm, issuer)
        try:
            claims = verify_signature(token, [algorithm], key)
        except SignatureError as exc:
            raise InvalidTokenError(exc.detail) from exc

        rules = ClaimRules(
            issuer=issuer,
            audiences=self._config.valid_audiences,
            missing_azp_reason=MISSING_AZP,
            check_expiry=self._config.check_expiry,
            leeway=self._config.leeway,
            now=self._now,
        )
        return validate_claims(claims, rules)

    decode = verify_and_decode

    def close(self) -> None:
        """Close HTTP clients of the per-issuer fetchers."""
        with self._fetchers_lock:
            for fetcher in self._fetchers.values():
                fetcher.close()
            self._fetchers.clear()

    def _select_algorithm(self, token: str) -> str:
        if not isinstance(token, str) or not token.strip():
            raise InvalidTokenError("Malformed token.")
        try:
            header = jwt.get_unverified_header(token)
        except JOSEError as exc:
            raise InvalidTokenError(str(exc) or "Malformed token.") from exc
        algorithm = header.get("alg")
        if algorithm not in self._config.supported_algs:
            raise InvalidTokenError("Token algorithm not supported")
        return algorithm

    def _select_issuer(self, token: str) -> str:
        try:
            unverified = jwt.get_unverified_claims(token)
        except JOSEError as exc:
            raise InvalidTokenError(str(exc) or "Malformed token.") from exc
        issuer = unverified.get("iss")
        if not isinstance(issuer, str) or issuer not in self._config.authorized_iss:
            raise InvalidTokenError(INVALID_ISS)
        return issuer

    def _resolve_key(self, algorithm: str, issuer: str) -> KeyMaterial:
        if algorithm == "HS256":
            # Presence is guaranteed by MultiVerifierConfig when HS256 is supported.
            return self._config.client_secret or b""
        return self._fetcher_for(issuer).fetch_keys()

    def _fetcher_for(self, issuer: str) -> JwksFetcher:
        with self._fetchers_lock:
            fetcher = self._fetchers.get(issuer)
            if fetcher is None:
                fetcher = JwksFetcher(
                    jwks_url=_jwks_url(issuer, self._config.jwks_path),
                    cache=self._config.cache,
                    http_options=self._config.http_options,
                )
                self._fetchers[issuer] = fetcher
            return fetcher


def _jwks_url(issuer: str, jwks_path: str) -> str:
    return f"{issuer.rstrip('/')}/{jwks_path.lstrip('/')}"


@lru_cache
def get_verifier() -> IdTokenVerifier:
    """Build and cache a single-issuer verifier from environment settings."""
    settings = get_settings()
    fetcher = None
    if settings.jwks.url and not settings.signature_key:
        fetcher = JwksFetcher(
            jwks_url=settings.jwks.url,
            cache=TTLKeyCache(
                maxsize=settings.jwks.cache_maxsize,
                ttl_seconds=settings.jwks.cache_ttl_seconds,
            ),
            http_options={"timeout": settings.jwks.http_timeout_seconds},
        )
    return IdTokenVerifier.from_options(settings.to_options(), jwks_fetcher=fetcher)
