#!/usr/bin/env python3
"""Resolve change impacts whose summary is still pending (cron, every 15 minutes).

Usage:
    python scripts/retry_pending_summaries.py

Impacts that have exhausted their retries get the fallback summary.
Exits 0 on success, 1 on failure.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from evidence_engine.db.session import SessionLocal
from evidence_engine.services.impact_summary import retry_pending_summaries


def main() -> int:
    db = SessionLocal()
    try:
        result = retry_pending_summaries(db)
        print(" ".join(f"{k}={v}" for k, v in sorted(result.items())))
        return 0
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
