"""Utility script to generate an App Store Connect JWT."""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv

from apple_store import AppStoreTokenProvider
from release_errors import ReleaseToolError
from store_config import resolve_issuer_id, resolve_value


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Generate a JWT for the App Store Connect API using environment configuration."
    )
    parser.add_argument(
        "--key-path",
        metavar="FILE",
        help="AuthKey_{ID}.p8 file (defaults to APP_STORE_PRIVATE_KEY_PATH)",
    )
    parser.add_argument(
        "--issuer-id", help="Issuer ID (defaults to APP_STORE_ISSUER_ID)"
    )
    parser.add_argument(
        "--force-refresh",
        action="store_true",
        help=(
            "Ignore any cached token and force generation of a new JWT. "
            "This flag has no effect if no token has been generated yet."
        ),
    )
    args = parser.parse_args(argv)

    load_dotenv()

    try:
        provider = AppStoreTokenProvider(
            resolve_value(args.key_path, "APP_STORE_PRIVATE_KEY_PATH", "키 파일 경로"),
            resolve_issuer_id(args.issuer_id),
        )
        if args.force_refresh:
            provider.invalidate()
        credential = provider.obtain()
    except ReleaseToolError as exc:
        print(f"JWT를 생성하지 못했습니다: {exc}", file=sys.stderr)
        return 1

    print(credential.token)
    return 0


if __name__ == "__main__":  # pragma: no mutate - CLI entry point
    raise SystemExit(main())
