"""Token verification data contract types."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

Algorithm = Literal["HS256", "RS256"]

SUPPORTED_ALGORITHMS: tuple[Algorithm, ...] = ("HS256", "RS256")

ClaimSet = dict[str, Any]

# Static secret/PEM or a kid -> PEM certificate mapping from a key set.
KeyMaterial = str | bytes | Mapping[str, str]
