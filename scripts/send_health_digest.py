#!/usr/bin/env python3
"""Queue the health digest email for one frequency (daily or weekly cron).

Usage:
    python scripts/send_health_digest.py daily
    python scripts/send_health_digest.py weekly

Running twice in the same day (or ISO week) queues nothing new; the worker
sends the emails.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from evidence_engine.db.session import SessionLocal
from evidence_engine.services.notifications.health_digest import (
    DIGEST_FREQUENCIES,
    queue_health_digest,
)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("frequency", choices=DIGEST_FREQUENCIES)
    args = parser.parse_args()

    db = SessionLocal()
    try:
        job = queue_health_digest(db, args.frequency)
        db.commit()
        print(f"job_run_id={job.id} key={job.idempotency_key}")
        return 0
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
