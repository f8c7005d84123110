"""CLI entrypoints for verifying tokens and inspecting key sets."""

from __future__ import annotations

import argparse
import json
from collections.abc import Sequence

from idtoken.config import configure_structlog, get_settings
from idtoken.exceptions import ConfigurationError, InvalidTokenError, KeyFetchError
from idtoken.jwks import JwksFetcher
from idtoken.verifier import get_verifier

EXIT_OK = 0
EXIT_INVALID_TOKEN = 1
EXIT_CONFIGURATION = 2
EXIT_KEY_FETCH = 3


def _print_error(error: str, detail: str) -> None:
    print(json.dumps({"error": error, "detail": detail}))


def _run_verify(token: str) -> int:
    """Verify one token with the environment-configured verifier."""
    try:
        verifier = get_verifier()
    except ConfigurationError as exc:
        _print_error("configuration_error", str(exc))
        return EXIT_CONFIGURATION

    try:
        claims = verifier.decode(token)
    except InvalidTokenError as exc:
        _print_error("invalid_token", exc.reason)
        return EXIT_INVALID_TOKEN
    except KeyFetchError as exc:
        _print_error("key_fetch_error", exc.detail)
        return EXIT_KEY_FETCH

    print(json.dumps(claims, sort_keys=True))
    return EXIT_OK


def _run_jwks(jwks_url: str) -> int:
    """Fetch a key set and list the key ids it resolves to."""
    with JwksFetcher(jwks_url=jwks_url) as fetcher:
        try:
            keys = fetcher.fetch_keys()
        except KeyFetchError as exc:
            _print_error("key_fetch_error", exc.detail)
            return EXIT_KEY_FETCH

    print(json.dumps({"jwks_url": jwks_url, "kids": sorted(keys)}))
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported commands."""
    parser = argparse.ArgumentParser(prog="python -m idtoken.cli")
    subcommands = parser.add_subparsers(dest="command", required=True)

    verify_parser = subcommands.add_parser("verify")
    verify_parser.add_argument("token", help="Encoded identity token to verify.")

    jwks_parser = subcommands.add_parser("jwks")
    jwks_parser.add_argument("url", help="Key-set URL to fetch.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_structlog(get_settings())
    if args.command == "verify":
        return _run_verify(args.token)
    if args.command == "jwks":
        return _run_jwks(args.url)
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
