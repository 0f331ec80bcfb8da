#!/usr/bin/env python3
"""
Call the apply-holds endpoint of a running service and print the debug
report.

  python scripts/apply_holds.py [--base http://localhost:8000]
"""
from __future__ import annotations

import argparse
import json
import os
import sys

import httpx

DEFAULT_BASE = "http://localhost:8000"
PATH = "/api/reservations/apply-holds"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Apply reservation holds now and print the per-reservation trace.")
    parser.add_argument(
        "--base",
        default=os.getenv("APP_BASE_URL") or DEFAULT_BASE,
        help="Service base URL (default: $APP_BASE_URL or %(default)s).",
    )
    parser.add_argument("--timeout", type=float, default=30.0, help="Request timeout in seconds.")
    args = parser.parse_args(argv)

    url = args.base.rstrip("/") + PATH
    try:
        r = httpx.post(url, params={"debug": "1"}, timeout=args.timeout)
    except httpx.HTTPError as exc:
        print(f"[FAIL] error calling apply-holds: {exc}", file=sys.stderr)
        return 1
    if r.status_code >= 400:
        print(f"[FAIL] request failed: {r.status_code} {r.reason_phrase}", file=sys.stderr)
        if r.text:
            print(r.text, file=sys.stderr)
        return 1
    print(json.dumps(r.json(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
