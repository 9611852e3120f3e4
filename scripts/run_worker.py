#!/usr/bin/env python3
"""Drain due jobs from the job_runs table.

Usage:
    python scripts/run_worker.py            # one pass
    python scripts/run_worker.py --loop     # poll until interrupted

Exits 0 when no job in the pass ended failed, 1 otherwise.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from evidence_engine.db.session import SessionLocal
from evidence_engine.pipeline.worker import run_pending_jobs

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Run pending evidence engine jobs")
    parser.add_argument("--loop", action="store_true", help="Poll until interrupted")
    parser.add_argument("--interval", type=float, default=5.0, help="Seconds between polls")
    parser.add_argument("--limit", type=int, default=None, help="Max jobs per pass")
    args = parser.parse_args()

    try:
        while True:
            counts = run_pending_jobs(SessionLocal, limit=args.limit)
            print(" ".join(f"{k}={v}" for k, v in sorted(counts.items())))
            if not args.loop:
                return 1 if counts.get("failed") else 0
            if not counts.get("claimed"):
                time.sleep(args.interval)
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
