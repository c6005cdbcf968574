#!/usr/bin/env python3
"""
Production startup script.

1. Runs migrations + seed (release.py), unless SKIP_RELEASE=1
2. Starts gunicorn on app.wsgi:app (replaces this process via os.execvp)

Usage:
    python scripts/start.py

Environment:
    PORT             bind port (default 8080)
    WEB_CONCURRENCY  gunicorn workers (default 2)
    SKIP_RELEASE     set to 1 when migrations run as a separate job
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _int_env(name: str, default: int, *, low: int, high: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = -1
    if value < low or value > high:
        print(f"ERROR: Invalid {name} value '{raw}'. Must be integer {low}-{high}.", flush=True)
        sys.exit(1)
    return value


def gunicorn_argv(port: int, workers: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", "120",  # large video uploads
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _int_env("PORT", 8080, low=1, high=65535)
    workers = _int_env("WEB_CONCURRENCY", 2, low=1, high=64)

    if (os.environ.get("SKIP_RELEASE") or "").strip() != "1":
        print("=== Running release phase ===", flush=True)
        from scripts.release import run_release

        try:
            run_release()
        except Exception as e:
            print(f"Release failed: {e}", flush=True)
            sys.exit(1)

    print(f"=== Starting gunicorn on 0.0.0.0:{port} ({workers} workers) ===", flush=True)
    os.execvp("gunicorn", gunicorn_argv(port, workers))


if __name__ == "__main__":
    main()
