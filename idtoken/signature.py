"""Cryptographic signature verification for identity tokens."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from jose import jwt
from jose.exceptions import JOSEError

from idtoken.exceptions import SignatureError
from idtoken.types import ClaimSet, KeyMaterial

# Claim semantics are enforced by idtoken.claims in a fixed order.
_DECODE_OPTIONS = {
    "verify_aud": False,
    "verify_iat": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}


def verify_signature(token: str, algorithms: Sequence[str], key: KeyMaterial) -> ClaimSet:
    """Verify token signature against an explicit algorithm allow-list and decode claims.

    ``key`` is either the verification material itself or a kid -> PEM mapping,
    in which case the token header must name one of its kids.
    """
    if not isinstance(token, str) or not token.strip():
        raise SignatureError("Malformed token.")
    allowed = list(algorithms)
    if not allowed:
        raise SignatureError("No verification algorithm configured.")

    try:
        header = jwt.get_unverified_header(token)
    except JOSEError as exc:
        raise SignatureError(str(exc) or "Malformed token.") from exc

    algorithm = header.get("alg")
    if not isinstance(algorithm, str) or algorithm not in allowed:
        raise SignatureError("Token algorithm not allowed.")

    verification_key = _select_key(key, header.get("kid"))
    try:
        claims = jwt.decode(token, verification_key, algorithms=allowed, options=_DECODE_OPTIONS)
    except JOSEError as exc:
        raise SignatureError(str(exc) or "Signature verification failed.") from exc
    return dict(claims)


def _select_key(key: KeyMaterial, kid: object) -> str | bytes:
    """Pick the verification key named by the token's kid when given a key set."""
    if not isinstance(key, Mapping):
        return key
    if not isinstance(kid, str) or not kid:
        raise SignatureError('"kid" empty, unable to lookup correct key')
    material = key.get(kid)
    if not material:
        raise SignatureError('"kid" invalid, unable to lookup correct key')
    return material
