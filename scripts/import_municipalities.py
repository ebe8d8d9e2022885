"""
Load or refresh the municipality list from an .xlsx file.

Headers are matched by their Russian names (e.g. "Муниципальное образование",
"Глава", "Должность"); municipalities are upserted by name.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from app.services.reference_data import read_municipality_rows, upsert_municipalities
from db.database import Database


def main() -> int:
    parser = argparse.ArgumentParser(description="Import municipalities from an Excel workbook.")
    parser.add_argument("--file", "-f", dest="file", required=True, help="Path to the .xlsx file.")
    parser.add_argument(
        "--sheet",
        "-s",
        dest="sheet",
        default=None,
        help="Sheet name (defaults to the first sheet).",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    rows = read_municipality_rows(Path(args.file).read_bytes(), sheet_name=args.sheet)
    database = Database.from_env()
    try:
        written = upsert_municipalities(database, rows)
    finally:
        database.dispose()

    print(json.dumps({"rows_read": len(rows), "rows_written": written}, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
