"""Ordered semantic validation of decoded identity-token claims."""

from __future__ import annotations

import hmac
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from idtoken.exceptions import InvalidTokenError
from idtoken.types import ClaimSet

MISSING_EXP = "Missing token exp"
MISSING_IAT = "Missing token iat"
INVALID_ISS = "Invalid token iss"
MISSING_AUD = "Missing token aud"
INVALID_AUD = "Invalid token aud"
INVALID_AZP = "Invalid token azp"
MISSING_AZP = "Missing token azp"
INVALID_EXP = "Invalid token exp"
INVALID_IAT = "Invalid token iat"
TOKEN_EXPIRED = "Token expired"
TOKEN_IAT_IN_FUTURE = "Token iat is in the future"


@dataclass(frozen=True)
class ClaimRules:
    """Expected issuer and audiences for one resolved verification context."""

    issuer: str
    audiences: tuple[str, ...]
    missing_azp_reason: str = INVALID_AZP
    check_expiry: bool = True
    leeway: int = 0
    now: Callable[[], float] = field(default=time.time, compare=False)


def validate_claims(claims: ClaimSet, rules: ClaimRules) -> ClaimSet:
    """Validate claims in a fixed order and return them unchanged.

    The first failing check determines the reported reason:
    exp, iat, iss, aud presence, aud match, azp for multi-audience tokens,
    then the clock checks when ``rules.check_expiry`` is set.
    """
    if not claims.get("exp"):
        raise InvalidTokenError(MISSING_EXP)

    if not claims.get("iat"):
        raise InvalidTokenError(MISSING_IAT)

    if not _matches(claims.get("iss"), rules.issuer):
        raise InvalidTokenError(INVALID_ISS)

    raw_audience = claims.get("aud")
    if not raw_audience:
        raise InvalidTokenError(MISSING_AUD)

    token_audiences = raw_audience if isinstance(raw_audience, list) else [raw_audience]
    if not any(audience in token_audiences for audience in rules.audiences):
        raise InvalidTokenError(INVALID_AUD)

    if len(token_audiences) > 1:
        authorized_party = claims.get("azp")
        if not authorized_party:
            raise InvalidTokenError(rules.missing_azp_reason)
        if not any(_matches(authorized_party, audience) for audience in rules.audiences):
            raise InvalidTokenError(INVALID_AZP)

    if rules.check_expiry:
        _validate_times(claims, rules)
    return claims


def _validate_times(claims: ClaimSet, rules: ClaimRules) -> None:
    """Compare exp and iat against the current time with leeway."""
    expires_at = claims["exp"]
    issued_at = claims["iat"]
    if not _is_timestamp(expires_at):
        raise InvalidTokenError(INVALID_EXP)
    if not _is_timestamp(issued_at):
        raise InvalidTokenError(INVALID_IAT)

    current = rules.now()
    if expires_at <= current - rules.leeway:
        raise InvalidTokenError(TOKEN_EXPIRED)
    if issued_at > current + rules.leeway:
        raise InvalidTokenError(TOKEN_IAT_IN_FUTURE)


def _is_timestamp(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _matches(value: Any, expected: str) -> bool:
    """Constant-time string equality that rejects non-string claim values."""
    if not isinstance(value, str):
        return False
    return hmac.compare_digest(value.encode("utf-8"), expected.encode("utf-8"))
