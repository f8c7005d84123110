"""Verifier configuration, environment settings and logging configuration."""

from __future__ import annotations

import base64
import binascii
import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from idtoken.cache import KeyCache, NoKeyCache
from idtoken.exceptions import ConfigurationError
from idtoken.jwks import JwksFetcher
from idtoken.types import SUPPORTED_ALGORITHMS, Algorithm, KeyMaterial

DEFAULT_JWKS_PATH = ".well-known/jwks.json"

_LOG_CONTEXT: dict[str, str] = {"environment": "development", "service": "idtoken"}


@dataclass(frozen=True)
class StaticKey:
    """Verification key configured up front (HMAC secret or PEM key)."""

    material: str | bytes

    def resolve(self) -> KeyMaterial:
        return self.material


@dataclass(frozen=True)
class JwksKeySource:
    """Verification keys published in a remote key set."""

    fetcher: JwksFetcher

    def resolve(self) -> KeyMaterial:
        return self.fetcher.fetch_keys()


KeySource = StaticKey | JwksKeySource


@dataclass(frozen=True)
class VerifierConfig:
    """Validated configuration of a single-issuer verifier."""

    algorithm: Algorithm
    key_source: KeySource
    client_id: str
    issuer: str
    check_expiry: bool = True
    leeway: int = 0

    @classmethod
    def from_options(
        cls,
        options: Mapping[str, Any],
        jwks_fetcher: JwksFetcher | None = None,
    ) -> VerifierConfig:
        """Validate raw options in field order, failing on the first violation."""
        algorithm = options.get("algorithm")
        if not algorithm or algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError('Config key "algorithm" is required to be HS256 or RS256')

        signature_key = options.get("signature_key")
        if not signature_key and jwks_fetcher is None:
            raise ConfigurationError(
                'Config key "signature_key" is required if no JWKS fetcher is provided'
            )
        if signature_key and jwks_fetcher is not None:
            raise ConfigurationError(
                'Config key "signature_key" cannot be combined with a JWKS fetcher'
            )
        key_source: KeySource = (
            StaticKey(_key_material(signature_key))
            if signature_key
            else JwksKeySource(jwks_fetcher)
        )

        client_id = options.get("client_id")
        if not client_id:
            raise ConfigurationError('Config key "client_id" is required')

        issuer = options.get("issuer")
        if not issuer:
            raise ConfigurationError('Config key "issuer" is required')

        return cls(
            algorithm=algorithm,
            key_source=key_source,
            client_id=str(client_id),
            issuer=str(issuer),
            check_expiry=bool(options.get("check_expiry", True)),
            leeway=_leeway(options),
        )


@dataclass(frozen=True)
class MultiVerifierConfig:
    """Validated configuration of a verifier accepting several issuers and algorithms."""

    valid_audiences: tuple[str, ...]
    authorized_iss: tuple[str, ...]
    supported_algs: tuple[Algorithm, ...]
    client_secret: str | bytes | None = None
    jwks_path: str = DEFAULT_JWKS_PATH
    cache: KeyCache = field(default_factory=NoKeyCache)
    http_options: Mapping[str, Any] = field(default_factory=dict)
    check_expiry: bool = True
    leeway: int = 0

    @classmethod
    def from_options(
        cls,
        options: Mapping[str, Any],
        cache: KeyCache | None = None,
        http_options: Mapping[str, Any] | None = None,
    ) -> MultiVerifierConfig:
        """Validate raw options, failing on the first violation."""
        valid_audiences = _string_list(options.get("valid_audiences"))
        if not valid_audiences:
            raise ConfigurationError('Config key "valid_audiences" is required')

        supported_algs = _string_list(options.get("supported_algs")) or ("HS256",)
        if any(alg not in SUPPORTED_ALGORITHMS for alg in supported_algs):
            raise ConfigurationError(
                'Config key "supported_algs" may only contain HS256 or RS256'
            )

        authorized_iss = _string_list(options.get("authorized_iss"))
        if not authorized_iss:
            raise ConfigurationError('Config key "authorized_iss" is required')

        secret = options.get("client_secret") or options.get("signature_key")
        client_secret: str | bytes | None = None
        if "HS256" in supported_algs:
            if not secret:
                raise ConfigurationError('Config key "client_secret" is required for HS256')
            if options.get("secret_base64_encoded", True):
                client_secret = _urlsafe_b64decode(secret)
            else:
                client_secret = _key_material(secret)

        return cls(
            valid_audiences=valid_audiences,
            authorized_iss=authorized_iss,
            supported_algs=supported_algs,  # type: ignore[arg-type]
            client_secret=client_secret,
            jwks_path=str(options.get("jwks_path") or DEFAULT_JWKS_PATH),
            cache=cache if cache is not None else NoKeyCache(),
            http_options=dict(http_options or options.get("http_options") or {}),
            check_expiry=bool(options.get("check_expiry", True)),
            leeway=_leeway(options),
        )


def _key_material(value: Any) -> str | bytes:
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    if isinstance(value, bytes):
        return value
    return str(value)


def _string_list(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list | tuple):
        return ()
    return tuple(str(item) for item in value if item)


def _leeway(options: Mapping[str, Any]) -> int:
    try:
        leeway = int(options.get("leeway", 0))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError('Config key "leeway" must be an integer') from exc
    if leeway < 0:
        raise ConfigurationError('Config key "leeway" must not be negative')
    return leeway


def _urlsafe_b64decode(secret: Any) -> bytes:
    """Decode a base64url secret, tolerating stripped padding."""
    raw = _key_material(secret)
    try:
        if isinstance(raw, str):
            raw = raw.encode("ascii")
        return base64.urlsafe_b64decode(raw + b"=" * (-len(raw) % 4))
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError('Config key "client_secret" is not valid base64') from exc


class AppSettings(BaseModel):
    """Runtime identity used for structured logging."""

    environment: Literal["development", "staging", "production"] = "development"
    service: str = "idtoken"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class JWKSSettings(BaseModel):
    """Remote key-set source and cache policy."""

    url: str | None = None
    cache_ttl_seconds: int = Field(default=600, ge=0)
    cache_maxsize: int = Field(default=16, ge=1)
    http_timeout_seconds: float = Field(default=5.0, gt=0)


class VerifierSettings(BaseSettings):
    """Single-issuer verifier settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IDTOKEN_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    jwks: JWKSSettings = Field(default_factory=JWKSSettings)
    algorithm: str | None = None
    signature_key: SecretStr | None = None
    client_id: str | None = None
    issuer: str | None = None
    check_expiry: bool = True
    leeway_seconds: int = Field(default=0, ge=0)

    def to_options(self) -> dict[str, Any]:
        """Return the option mapping accepted by VerifierConfig.from_options."""
        return {
            "algorithm": self.algorithm,
            "signature_key": (
                self.signature_key.get_secret_value() if self.signature_key else None
            ),
            "client_id": self.client_id,
            "issuer": self.issuer,
            "check_expiry": self.check_expiry,
            "leeway": self.leeway_seconds,
        }


def _standard_log_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject required structured logging fields."""
    event_dict.setdefault("environment", _LOG_CONTEXT["environment"])
    event_dict.setdefault("service", _LOG_CONTEXT["service"])
    event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
    return event_dict


def configure_structlog(settings: VerifierSettings) -> None:
    """Configure structlog for JSON output with required fields."""
    _LOG_CONTEXT["environment"] = settings.app.environment
    _LOG_CONTEXT["service"] = settings.app.service

    log_level = getattr(logging, settings.app.log_level, logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _standard_log_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> VerifierSettings:
    """Load and cache verifier settings from environment variables."""
    return VerifierSettings()
