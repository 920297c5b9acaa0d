#!/usr/bin/env python3
"""Warm the response caches or bump the cache version from a cron job.

Point a crontab entry at this script every few minutes so the machines
grid is always served from a pre-rendered page::

    */5 * * * * python scripts/warm_cache.py warm

A sheet edit hook that cannot reach the web app can use ``bump`` instead.
"""
from __future__ import annotations

import argparse
import sys

from makerspace import create_app
from makerspace.utils.version_cache import WARMERS, bump_version, run_warmers


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm caches or bump the cache version")
    parser.add_argument(
        "action",
        nargs="?",
        choices=("warm", "bump"),
        default="warm",
        help="warm: pre-render cached pages (default); bump: invalidate every cached page",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    app = create_app()

    if args.action == "bump":
        print(f"Cache version is now {bump_version(app)}")
        return 0

    warmed = run_warmers(app)
    print(f"Warmed {len(warmed)}/{len(WARMERS)}: {', '.join(warmed) or '-'}")
    return 0 if len(warmed) == len(WARMERS) else 1


if __name__ == "__main__":
    sys.exit(main())
