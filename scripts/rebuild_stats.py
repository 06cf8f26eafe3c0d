"""
rebuild_stats.py: recompute bucket stats, betting history and model state
from the stored ledger.

Use after restoring a database backup, after editing the kv_store table by
hand, or whenever a derived structure is suspected to be stale.  The ledger
itself is only read, never written, unless --undo-last is given.

Usage
-----
  python scripts/rebuild_stats.py                 # rebuild and print totals
  python scripts/rebuild_stats.py --dry-run       # compute, print, write nothing
  python scripts/rebuild_stats.py --undo-last     # drop the newest event, then rebuild
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure the project root (one level up from scripts/) is on sys.path so that
# `from race_edge.xxx import ...` resolves when the script is run directly.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Rebuild Race Edge derived state from the ledger."
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and print the rebuilt state without persisting it.",
    )
    parser.add_argument(
        "--undo-last",
        action="store_true",
        help="Remove the most recent ledger event before rebuilding.",
    )
    args = parser.parse_args()
    if args.dry_run and args.undo_last:
        parser.error("--undo-last writes to the ledger and cannot be combined with --dry-run")

    from race_edge.exceptions import StorageError
    from race_edge.models import init_db
    from race_edge.services.race_tracker import RaceTracker
    from race_edge.services.rebuild import compute_derived_state
    from race_edge.services.storage import SqlKeyValueStore

    init_db()
    tracker = RaceTracker(SqlKeyValueStore())

    try:
        if args.dry_run:
            derived = compute_derived_state(tracker.ledger.all())
        else:
            if args.undo_last and not tracker.undo_last():
                logger.warning("Ledger is empty; nothing to undo")
            derived = tracker.rebuild_all()
    except StorageError as exc:
        logger.error("Rebuild failed: %s", exc)
        sys.exit(1)

    label = "[DRY RUN] " if args.dry_run else ""
    print(f"{label}Events in ledger : {derived.events}")
    print(json.dumps(
        {
            "betting_history": derived.betting_history.to_dict(),
            "model_state": derived.model_state.to_dict(),
            "bucket_stats": derived.bucket_stats.to_dict(),
        },
        indent=2,
    ))


if __name__ == "__main__":
    main()
