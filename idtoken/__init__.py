"""Public identity token verification exports."""

from idtoken.cache import KeyCache, NoKeyCache, TTLKeyCache
from idtoken.claims import ClaimRules, validate_claims
from idtoken.config import MultiVerifierConfig, VerifierConfig
from idtoken.exceptions import (
    ConfigurationError,
    InvalidTokenError,
    KeyFetchError,
    SignatureError,
    VerifierError,
)
from idtoken.jwks import JwksFetcher
from idtoken.signature import verify_signature
from idtoken.verifier import IdTokenVerifier, JWTVerifier

__all__ = [
    "ClaimRules",
    "ConfigurationError",
    "IdTokenVerifier",
    "InvalidTokenError",
    "JWTVerifier",
    "JwksFetcher",
    "KeyCache",
    "KeyFetchError",
    "MultiVerifierConfig",
    "NoKeyCache",
    "SignatureError",
    "TTLKeyCache",
    "VerifierConfig",
    "VerifierError",
    "validate_claims",
    "verify_signature",
]
