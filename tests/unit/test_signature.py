"""Unit tests for signature verification."""

from __future__ import annotations

import base64
import json

import pytest
from conftest import (
    CLIENT_SECRET,
    SigningIdentity,
    hs256_token,
    rs256_token,
    valid_claims,
)

from idtoken.exceptions import SignatureError
from idtoken.jwks import convert_cert_to_pem
from idtoken.signature import verify_signature


def _b64url(payload: dict[str, object]) -> str:
    raw = json.dumps(payload).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def test_verify_signature_returns_claims_with_json_types() -> None:
    """Decoded claims keep numbers numeric and lists as lists."""
    claims = valid_claims(aud=["a", "b"], score=1.5)
    token = hs256_token(claims)

    decoded = verify_signature(token, ["HS256"], CLIENT_SECRET)

    assert decoded == claims
    assert isinstance(decoded["exp"], int)
    assert decoded["aud"] == ["a", "b"]


def test_verify_signature_rejects_wrong_secret() -> None:
    """A token signed with another secret fails verification."""
    token = hs256_token(valid_claims(), secret="__other_secret__")

    with pytest.raises(SignatureError):
        verify_signature(token, ["HS256"], CLIENT_SECRET)


def test_verify_signature_rejects_tampered_payload() -> None:
    """Modifying the payload invalidates the signature."""
    token = hs256_token(valid_claims())
    header, _, signature = token.split(".")
    tampered = ".".join([header, _b64url(valid_claims(sub="attacker")), signature])

    with pytest.raises(SignatureError):
        verify_signature(tampered, ["HS256"], CLIENT_SECRET)


@pytest.mark.parametrize("token", ["", "   ", "not-a-token", "a.b", "a.b.c"])
def test_verify_signature_rejects_malformed_tokens(token: str) -> None:
    """Structurally malformed tokens raise SignatureError."""
    with pytest.raises(SignatureError):
        verify_signature(token, ["HS256"], CLIENT_SECRET)


def test_verify_signature_rejects_algorithm_outside_allow_list(
    signing_identity: SigningIdentity,
) -> None:
    """A well-formed RS256 token is refused when only HS256 is allowed."""
    token = rs256_token(valid_claims(), signing_identity)

    with pytest.raises(SignatureError) as exc_info:
        verify_signature(token, ["HS256"], CLIENT_SECRET)

    assert exc_info.value.detail == "Token algorithm not allowed."


def test_verify_signature_rejects_unsigned_token() -> None:
    """An alg=none token never selects the verification method."""
    token = f"{_b64url({'alg': 'none', 'typ': 'JWT'})}.{_b64url(valid_claims())}."

    with pytest.raises(SignatureError):
        verify_signature(token, ["HS256"], CLIENT_SECRET)


def test_verify_signature_rejects_certificate_as_hmac_secret(
    signing_identity: SigningIdentity,
) -> None:
    """A public certificate cannot be used as an HS256 secret."""
    pem = convert_cert_to_pem(signing_identity.certificate_b64)
    token = hs256_token(valid_claims(), secret="irrelevant")

    with pytest.raises(SignatureError):
        verify_signature(token, ["HS256"], pem)


def test_verify_signature_selects_key_by_kid(
    signing_identity: SigningIdentity, other_identity: SigningIdentity
) -> None:
    """RS256 verification picks the certificate named by the token header."""
    keys = {
        signing_identity.kid: convert_cert_to_pem(signing_identity.certificate_b64),
        other_identity.kid: convert_cert_to_pem(other_identity.certificate_b64),
    }
    token_1 = rs256_token(valid_claims(sub="user-1"), signing_identity)
    token_2 = rs256_token(valid_claims(sub="user-2"), other_identity)

    assert verify_signature(token_1, ["RS256"], keys)["sub"] == "user-1"
    assert verify_signature(token_2, ["RS256"], keys)["sub"] == "user-2"


def test_verify_signature_rejects_missing_kid(signing_identity: SigningIdentity) -> None:
    """A key set lookup requires a kid in the token header."""
    keys = {signing_identity.kid: convert_cert_to_pem(signing_identity.certificate_b64)}
    token = rs256_token(valid_claims(), signing_identity, kid="")

    with pytest.raises(SignatureError) as exc_info:
        verify_signature(token, ["RS256"], keys)

    assert "kid" in exc_info.value.detail


def test_verify_signature_rejects_unknown_kid(
    signing_identity: SigningIdentity, other_identity: SigningIdentity
) -> None:
    """Tokens naming an unpublished kid fail, including against an empty key set."""
    keys = {signing_identity.kid: convert_cert_to_pem(signing_identity.certificate_b64)}
    token = rs256_token(valid_claims(), other_identity)

    with pytest.raises(SignatureError):
        verify_signature(token, ["RS256"], keys)
    with pytest.raises(SignatureError):
        verify_signature(token, ["RS256"], {})


def test_verify_signature_rejects_key_mismatch_under_published_kid(
    signing_identity: SigningIdentity, other_identity: SigningIdentity
) -> None:
    """A token signed by another key but claiming a published kid fails."""
    keys = {signing_identity.kid: convert_cert_to_pem(signing_identity.certificate_b64)}
    token = rs256_token(valid_claims(), other_identity, kid=signing_identity.kid)

    with pytest.raises(SignatureError):
        verify_signature(token, ["RS256"], keys)
