"""
Financial calculation API endpoints.

Stateless endpoints: each request carries its full input and gets the
recomputed result back.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date
from sqlalchemy.orm import Session

from app.calculations.amortization import (
    generate_amortization_schedule,
    simulate_payoff,
)
from app.calculations.assumptions import (
    ProjectionAssumptions,
    TaxBracketInput,
    to_brackets,
)
from app.calculations.tax import calculate_progressive_tax, marginal_rate
from app.config import get_settings
from app.db.database import get_db
from app.services.tax_schedules import resolve_schedule

router = APIRouter()


@router.post("/projection")
async def calculate_projection(assumptions: ProjectionAssumptions):
    """
    Run a full portfolio projection.

    Gains are taxed through `tax_brackets` on top of `base_taxable_income`
    when a non-empty schedule is given. An omitted or empty schedule uses
    the flat `marginal_tax_rate` instead; it does not mean zero tax.
    """
    try:
        result = assumptions.run()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return result.to_dict()


class AmortizationInput(BaseModel):
    """Input for amortization calculation."""

    principal: float
    annual_rate: float = Field(ge=0)
    amortization_months: int = Field(gt=0)
    extra_payment: float = Field(default=0.0, ge=0)
    include_schedule: bool = False
    start_date: Optional[date] = None


@router.post("/amortization")
async def calculate_amortization(inputs: AmortizationInput):
    """Payoff summary for a level-payment loan, with optional schedule."""
    summary = simulate_payoff(
        principal=inputs.principal,
        annual_rate=inputs.annual_rate,
        amortization_months=inputs.amortization_months,
        extra_payment=inputs.extra_payment,
    )

    schedule = []
    if inputs.include_schedule:
        schedule = generate_amortization_schedule(
            principal=inputs.principal,
            annual_rate=inputs.annual_rate,
            amortization_months=inputs.amortization_months,
            extra_payment=inputs.extra_payment,
            start_date=inputs.start_date,
        )

    return {
        "summary": summary.to_dict() if summary else None,
        "schedule": schedule,
    }


class TaxInput(BaseModel):
    """Input for a progressive tax calculation."""

    taxable_income: float = Field(ge=0)
    brackets: Optional[List[TaxBracketInput]] = None
    year: Optional[int] = None
    jurisdiction: Optional[str] = None


class TaxResponse(BaseModel):
    total_tax: float
    marginal_rate: float
    effective_rate: float
    after_tax_income: float
    source: str


@router.post("/tax", response_model=TaxResponse)
async def calculate_tax(inputs: TaxInput, db: Session = Depends(get_db)):
    """
    Tax owed on taxable income.

    Uses the brackets in the request, or the stored schedule for the
    requested year and jurisdiction.
    """
    if inputs.brackets is not None:
        try:
            brackets = to_brackets(inputs.brackets)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        source = "request"
    else:
        resolved = resolve_schedule(
            db,
            inputs.year or date.today().year,
            inputs.jurisdiction or get_settings().default_tax_jurisdiction,
        )
        brackets = resolved.brackets
        source = resolved.source

    income = inputs.taxable_income
    total_tax = calculate_progressive_tax(brackets, income)

    return TaxResponse(
        total_tax=round(total_tax, 2),
        marginal_rate=marginal_rate(brackets, income),
        effective_rate=total_tax / income if income > 0 else 0.0,
        after_tax_income=round(income - total_tax, 2),
        source=source,
    )


class ActiveHoldingsInput(BaseModel):
    assumptions: ProjectionAssumptions
    period: int = Field(ge=0)


@router.post("/active-holdings")
async def active_holdings(inputs: ActiveHoldingsInput):
    """Assets held going into a period (valid disposition targets)."""
    try:
        lifecycle = inputs.assumptions.lifecycle()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    holdings = lifecycle.active_as_of(inputs.period)
    return {
        "period": inputs.period,
        "holdings": [
            {"asset_id": a.asset_id, "name": a.name, "ownership": a.ownership}
            for a in holdings
        ],
    }
