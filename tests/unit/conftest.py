"""Shared unit-test fixtures: RSA signing identities and token builders."""

from __future__ import annotations

import base64
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from jose import jwt as jose_jwt

CLIENT_ID = "__client_id__"
CLIENT_SECRET = "__client_secret__"
ISSUER = "__valid_issuer__"


@dataclass(frozen=True)
class SigningIdentity:
    """RSA private key plus the self-signed certificate published for it."""

    kid: str
    private_key_pem: str
    certificate_b64: str


def _generate_identity(kid: str) -> SigningIdentity:
    """Create an RSA key and a one-day self-signed certificate."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, f"idtoken-{kid}")])
    issued = datetime.now(UTC)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(issued - timedelta(days=1))
        .not_valid_after(issued + timedelta(days=1))
        .sign(private_key, hashes.SHA256())
    )
    der = certificate.public_bytes(serialization.Encoding.DER)
    return SigningIdentity(
        kid=kid,
        private_key_pem=private_key_pem,
        certificate_b64=base64.b64encode(der).decode("ascii"),
    )


@pytest.fixture(scope="session")
def signing_identity() -> SigningIdentity:
    """Session-wide RSA identity published under kid-1."""
    return _generate_identity("kid-1")


@pytest.fixture(scope="session")
def other_identity() -> SigningIdentity:
    """Second RSA identity never published in the key set."""
    return _generate_identity("kid-2")


def valid_claims(**overrides: Any) -> dict[str, Any]:
    """Claims accepted by the default verifier configuration."""
    claims: dict[str, Any] = {
        "sub": "user-123",
        "exp": int(time.time()) + 10,
        "iat": 1,
        "iss": ISSUER,
        "aud": CLIENT_ID,
    }
    claims.update(overrides)
    return {key: value for key, value in claims.items() if value is not None}


def hs256_token(claims: dict[str, Any], secret: str | bytes = CLIENT_SECRET) -> str:
    """Encode claims as an HS256 token."""
    return jose_jwt.encode(claims, secret, algorithm="HS256")


def rs256_token(claims: dict[str, Any], identity: SigningIdentity, kid: str | None = None) -> str:
    """Encode claims as an RS256 token whose header names the given kid."""
    headers = {"kid": kid if kid is not None else identity.kid}
    return jose_jwt.encode(claims, identity.private_key_pem, algorithm="RS256", headers=headers)


def jwks_document(*identities: SigningIdentity) -> dict[str, list[dict[str, Any]]]:
    """Build a key-set document publishing each identity's certificate."""
    return {
        "keys": [
            {"kid": identity.kid, "kty": "RSA", "use": "sig", "x5c": [identity.certificate_b64]}
            for identity in identities
        ]
    }


class RecordingTransport:
    """Mock transport serving one JSON document and counting requests."""

    def __init__(
        self,
        payload: Any = None,
        status_code: int = 200,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        self.payload = payload
        self.status_code = status_code
        self.requests: list[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._handler is not None:
            return self._handler(request)
        return httpx.Response(status_code=self.status_code, json=self.payload)

    def client(self) -> httpx.Client:
        """Return a sync client routed through this transport."""
        return httpx.Client(transport=httpx.MockTransport(self))
