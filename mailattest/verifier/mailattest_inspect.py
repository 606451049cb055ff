"""Operator tooling for the email verification round trip."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Sequence

from ..agent.qr_artifact import sweep_orphaned_artifacts
from ..errors import MalformedToken
from .response_resolver import ResponseResolver


def _read_token(args: argparse.Namespace) -> str:
    if args.token_file:
        return Path(args.token_file).read_text(encoding="utf-8").strip()
    if args.access_token == "-":
        return sys.stdin.read().strip()
    return args.access_token


def _resolve(args: argparse.Namespace) -> dict[str, object]:
    token = _read_token(args)
    try:
        resolved = ResponseResolver().resolve(token)
    except MalformedToken as exc:
        raise SystemExit(str(exc)) from exc
    return {
        "status": "ok",
        "email": resolved.email,
        "request_token": resolved.request_token,
    }


def _sweep(args: argparse.Namespace) -> dict[str, object]:
    removed = sweep_orphaned_artifacts(args.dir, timedelta(minutes=args.older_than))
    return {
        "status": "ok",
        "directory": str(args.dir),
        "removed": [path.name for path in removed],
    }


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect email verification tokens and QR artifacts")
    parser.add_argument("--verbose", action="store_true", help="Log debug output to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve = subparsers.add_parser("resolve", help="Show the email bound to an access token")
    resolve.add_argument("access_token", nargs="?", default="-", help="Access token, or - to read stdin")
    resolve.add_argument("--token-file", type=Path, help="File holding the access token")
    resolve.set_defaults(handler=_resolve)

    sweep = subparsers.add_parser("sweep", help="Remove QR artifacts left behind by crashed flows")
    sweep.add_argument("--dir", type=Path, default=Path(tempfile.gettempdir()))
    sweep.add_argument(
        "--older-than",
        type=int,
        default=60,
        help="Only remove artifacts older than this many minutes",
    )
    sweep.set_defaults(handler=_sweep)

    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    print(json.dumps(args.handler(args), indent=2))


if __name__ == "__main__":
    main()
