from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db import db_session
from logging_setup import configure_logging
from store import list_agencies, recompute_agency_trust


logger = logging.getLogger("recompute_trust_scores")


def main() -> int:
    parser = argparse.ArgumentParser(description="Recalculate trust scores and ratings for every agency.")
    parser.add_argument("--status", default="all", choices=["all", "pending", "approved", "rejected"])
    args = parser.parse_args()

    configure_logging()
    failures: list[str] = []

    with db_session() as db:
        agency_ids = [(agency.id, agency.name) for agency in list_agencies(db, args.status)]
        for agency_id, name in agency_ids:
            score = recompute_agency_trust(db, agency_id, on_error=lambda exc, name=name: failures.append(name))
            if score is not None:
                logger.info("%s -> %d", name, score)

    logger.info("Recomputed %d agencies, %d failed", len(agency_ids) - len(failures), len(failures))
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
