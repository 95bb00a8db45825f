"""
Seed the database with the built-in combined Ontario 2024 tax brackets.
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.calculations.tax import ONTARIO_TAX_BRACKETS_2024, brackets_to_dicts
from app.db.database import get_db_context, init_db
from app.db.models import TaxBracketSchedule
from app.services.tax_schedules import find_schedule

YEAR = 2024
JURISDICTION = "ON"


def main():
    init_db()

    with get_db_context() as db:
        existing = find_schedule(db, YEAR, JURISDICTION)
        if existing:
            print(f"{JURISDICTION} {YEAR} brackets already stored (ID: {existing.id})")
            return

        schedule = TaxBracketSchedule(
            year=YEAR,
            jurisdiction=JURISDICTION,
            brackets=brackets_to_dicts(ONTARIO_TAX_BRACKETS_2024),
        )
        db.add(schedule)
        db.flush()
        print(f"Stored {len(schedule.brackets)} brackets for {JURISDICTION} {YEAR} (ID: {schedule.id})")


if __name__ == "__main__":
    main()
