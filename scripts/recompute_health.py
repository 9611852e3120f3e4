#!/usr/bin/env python3
"""Recompute health for every unlocked pack (daily cron).

Usage:
    python scripts/recompute_health.py

Exits 0 when every pack was recomputed, 1 if any pack failed.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from evidence_engine.db.session import SessionLocal
from evidence_engine.services.health.recompute import recompute_all


def main() -> int:
    db = SessionLocal()
    try:
        result = recompute_all(db)
        print(
            f"processed={result['processed']} "
            f"failed={result['failed']} "
            f"total={result['total']}"
        )
        return 1 if result["failed"] else 0
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
