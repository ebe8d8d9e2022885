"""
Seed the traffic-safety indicator catalog (42 codes, form "traffic_safety").
"""

from __future__ import annotations

import argparse
import logging

from app.services.reference_data import seed_traffic_safety_catalog
from db.database import Database


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the traffic-safety indicator catalog.")
    parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    database = Database.from_env()
    try:
        written = seed_traffic_safety_catalog(database)
    finally:
        database.dispose()

    print(f"Indicators written: {written}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
