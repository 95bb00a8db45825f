"""
Tax bracket schedule lookup.

Stored schedules are keyed by tax year and jurisdiction. When the requested
year has not been entered yet the previous year's schedule is used, and
when nothing is stored the built-in schedule is used.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from app.calculations.tax import (
    ONTARIO_TAX_BRACKETS_2024,
    TaxBracket,
    brackets_from_dicts,
)
from app.db.models import TaxBracketSchedule

logger = logging.getLogger(__name__)

SOURCE_STORED = "stored"
SOURCE_PREVIOUS_YEAR = "previous_year"
SOURCE_BUILT_IN = "built_in"


@dataclass
class ResolvedSchedule:
    year: int
    jurisdiction: str
    brackets: List[TaxBracket]
    source: str


def find_schedule(
    db: Session, year: int, jurisdiction: str
) -> Optional[TaxBracketSchedule]:
    """Most recently updated live schedule for a year and jurisdiction."""
    return (
        db.query(TaxBracketSchedule)
        .filter(
            TaxBracketSchedule.year == year,
            TaxBracketSchedule.jurisdiction == jurisdiction,
            TaxBracketSchedule.is_deleted == False,
        )
        .order_by(TaxBracketSchedule.updated_at.desc())
        .first()
    )


def resolve_schedule(db: Session, year: int, jurisdiction: str) -> ResolvedSchedule:
    """
    Find the brackets to use for a tax year.

    Args:
        db: Database session
        year: Tax year
        jurisdiction: Jurisdiction code (e.g. "ON")

    Returns:
        ResolvedSchedule noting where the brackets came from
    """
    schedule = find_schedule(db, year, jurisdiction)
    if schedule:
        return ResolvedSchedule(
            year, jurisdiction, brackets_from_dicts(schedule.brackets), SOURCE_STORED
        )

    schedule = find_schedule(db, year - 1, jurisdiction)
    if schedule:
        logger.warning(
            "No %s tax brackets for %d; using %d schedule",
            jurisdiction,
            year,
            year - 1,
        )
        return ResolvedSchedule(
            year - 1,
            jurisdiction,
            brackets_from_dicts(schedule.brackets),
            SOURCE_PREVIOUS_YEAR,
        )

    logger.warning(
        "No stored tax brackets for %s in %d or %d; using built-in schedule",
        jurisdiction,
        year,
        year - 1,
    )
    return ResolvedSchedule(
        2024, "ON", list(ONTARIO_TAX_BRACKETS_2024), SOURCE_BUILT_IN
    )
