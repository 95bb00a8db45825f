"""
Tax bracket settings API endpoints.
"""

import logging

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Optional, List
from datetime import date
from sqlalchemy.orm import Session

from app.calculations.assumptions import TaxBracketInput, to_brackets
from app.calculations.tax import brackets_to_dicts
from app.config import get_settings
from app.db.database import get_db
from app.db.models import TaxBracketSchedule
from app.services.tax_schedules import resolve_schedule

logger = logging.getLogger(__name__)

router = APIRouter()


class TaxScheduleCreate(BaseModel):
    """Schema for storing a bracket schedule."""

    year: int
    jurisdiction: str
    brackets: List[TaxBracketInput]


class TaxScheduleResponse(BaseModel):
    id: Optional[str] = None
    year: int
    jurisdiction: str
    brackets: List[dict]
    source: str = "stored"


def schedule_to_response(schedule: TaxBracketSchedule) -> TaxScheduleResponse:
    return TaxScheduleResponse(
        id=schedule.id,
        year=schedule.year,
        jurisdiction=schedule.jurisdiction,
        brackets=schedule.brackets or [],
    )


@router.get("/", response_model=List[TaxScheduleResponse])
async def list_schedules(
    year: Optional[int] = None,
    jurisdiction: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List stored schedules, newest year first."""
    query = db.query(TaxBracketSchedule).filter(TaxBracketSchedule.is_deleted == False)

    if year is not None:
        query = query.filter(TaxBracketSchedule.year == year)
    if jurisdiction:
        query = query.filter(TaxBracketSchedule.jurisdiction == jurisdiction)

    schedules = query.order_by(TaxBracketSchedule.year.desc()).all()
    return [schedule_to_response(s) for s in schedules]


@router.post("/", response_model=TaxScheduleResponse, status_code=201)
async def create_schedule(
    schedule_data: TaxScheduleCreate,
    db: Session = Depends(get_db),
):
    """Store a bracket schedule for a year and jurisdiction."""
    try:
        brackets = to_brackets(schedule_data.brackets)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    schedule = TaxBracketSchedule(
        year=schedule_data.year,
        jurisdiction=schedule_data.jurisdiction,
        brackets=brackets_to_dicts(brackets),
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)

    logger.info(
        "Stored %d tax brackets for %s %d",
        len(brackets),
        schedule.jurisdiction,
        schedule.year,
    )
    return schedule_to_response(schedule)


@router.get("/resolve", response_model=TaxScheduleResponse)
async def resolve(
    year: Optional[int] = None,
    jurisdiction: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Brackets to use for a year, falling back to last year then built-in."""
    resolved = resolve_schedule(
        db,
        year or date.today().year,
        jurisdiction or get_settings().default_tax_jurisdiction,
    )
    return TaxScheduleResponse(
        year=resolved.year,
        jurisdiction=resolved.jurisdiction,
        brackets=brackets_to_dicts(resolved.brackets),
        source=resolved.source,
    )


@router.delete("/{schedule_id}")
async def delete_schedule(
    schedule_id: str,
    db: Session = Depends(get_db),
):
    """Soft delete a stored schedule."""
    schedule = (
        db.query(TaxBracketSchedule)
        .filter(TaxBracketSchedule.id == schedule_id, TaxBracketSchedule.is_deleted == False)
        .first()
    )

    if not schedule:
        raise HTTPException(status_code=404, detail="Tax schedule not found")

    schedule.is_deleted = True
    db.commit()

    return {"deleted": True, "id": schedule_id}
