"""
Saved calculator instance API endpoints.

A calculator instance stores the assumption set a user entered and the
projection computed from it, as one JSON state blob.
"""

import logging
from datetime import date, datetime

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from typing import Optional, List
from sqlalchemy.orm import Session

from app.calculations.assumptions import ProjectionAssumptions
from app.db.database import get_db
from app.db.models import CalculatorInstance

logger = logging.getLogger(__name__)

router = APIRouter()


class CalculatorCreate(BaseModel):
    """Schema for creating a calculator instance."""

    name: str
    calculator_type: str = "real_estate_portfolio"
    description: Optional[str] = None
    client_id: Optional[str] = None
    inputs: ProjectionAssumptions = Field(default_factory=ProjectionAssumptions)


class CalculatorUpdate(BaseModel):
    """Schema for updating a calculator instance."""

    name: Optional[str] = None
    description: Optional[str] = None
    client_id: Optional[str] = None
    inputs: Optional[ProjectionAssumptions] = None


class CalculatorResponse(BaseModel):
    """Schema for calculator instance response."""

    id: str
    name: str
    calculator_type: str
    description: Optional[str]
    client_id: Optional[str]
    state: dict
    last_run_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CalculatorListResponse(BaseModel):
    """Response for listing calculator instances."""

    calculators: List[CalculatorResponse]
    total: int


def calculator_to_response(instance: CalculatorInstance) -> CalculatorResponse:
    """Convert CalculatorInstance model to response schema."""
    return CalculatorResponse(
        id=instance.id,
        name=instance.name,
        calculator_type=instance.calculator_type or "real_estate_portfolio",
        description=instance.description,
        client_id=instance.client_id,
        state=instance.state or {},
        last_run_at=instance.last_run_at.isoformat() if instance.last_run_at else None,
        created_at=instance.created_at.isoformat() if instance.created_at else None,
        updated_at=instance.updated_at.isoformat() if instance.updated_at else None,
    )


def run_and_store(instance: CalculatorInstance, inputs: ProjectionAssumptions) -> None:
    """Recompute the projection and replace the instance state."""
    if inputs.base_year is None:
        # Pin the calendar so later re-runs line up with the saved output
        inputs = inputs.model_copy(update={"base_year": date.today().year})

    try:
        result = inputs.run()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    # Reassign rather than mutate so the JSON column is flagged dirty
    instance.state = {
        "inputs": inputs.model_dump(mode="json"),
        "output": result.to_dict(),
    }
    instance.last_run_at = datetime.utcnow()


def get_live_instance(db: Session, calculator_id: str) -> CalculatorInstance:
    instance = (
        db.query(CalculatorInstance)
        .filter(
            CalculatorInstance.id == calculator_id,
            CalculatorInstance.is_deleted == False,
        )
        .first()
    )

    if not instance:
        raise HTTPException(status_code=404, detail="Calculator not found")

    return instance


@router.get("/", response_model=CalculatorListResponse)
async def list_calculators(
    skip: int = 0,
    limit: int = 100,
    client_id: Optional[str] = None,
    calculator_type: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List saved calculators, optionally filtered by client or type."""
    query = db.query(CalculatorInstance).filter(CalculatorInstance.is_deleted == False)

    if client_id:
        query = query.filter(CalculatorInstance.client_id == client_id)
    if calculator_type:
        query = query.filter(CalculatorInstance.calculator_type == calculator_type)

    total = query.count()
    instances = (
        query.order_by(CalculatorInstance.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

    return CalculatorListResponse(
        calculators=[calculator_to_response(i) for i in instances],
        total=total,
    )


@router.post("/", response_model=CalculatorResponse, status_code=201)
async def create_calculator(
    calculator_data: CalculatorCreate,
    db: Session = Depends(get_db),
):
    """Create a calculator instance and compute its first projection."""
    instance = CalculatorInstance(
        name=calculator_data.name,
        calculator_type=calculator_data.calculator_type,
        description=calculator_data.description,
        client_id=calculator_data.client_id,
    )
    run_and_store(instance, calculator_data.inputs)

    db.add(instance)
    db.commit()
    db.refresh(instance)

    logger.info("Created calculator %s (%s)", instance.id, instance.name)
    return calculator_to_response(instance)


@router.get("/{calculator_id}", response_model=CalculatorResponse)
async def get_calculator(
    calculator_id: str,
    db: Session = Depends(get_db),
):
    """Get a calculator instance by ID."""
    return calculator_to_response(get_live_instance(db, calculator_id))


@router.put("/{calculator_id}", response_model=CalculatorResponse)
async def update_calculator(
    calculator_id: str,
    calculator_data: CalculatorUpdate,
    db: Session = Depends(get_db),
):
    """Update a calculator; new inputs trigger a full re-run."""
    instance = get_live_instance(db, calculator_id)

    update_data = calculator_data.model_dump(exclude_unset=True, exclude={"inputs"})
    for field, value in update_data.items():
        setattr(instance, field, value)

    if calculator_data.inputs is not None:
        run_and_store(instance, calculator_data.inputs)

    db.commit()
    db.refresh(instance)

    return calculator_to_response(instance)


@router.post("/{calculator_id}/run", response_model=CalculatorResponse)
async def run_calculator(
    calculator_id: str,
    db: Session = Depends(get_db),
):
    """Recompute the stored projection from the stored inputs."""
    instance = get_live_instance(db, calculator_id)
    inputs = ProjectionAssumptions.model_validate((instance.state or {}).get("inputs", {}))
    run_and_store(instance, inputs)

    db.commit()
    db.refresh(instance)

    return calculator_to_response(instance)


@router.delete("/{calculator_id}")
async def delete_calculator(
    calculator_id: str,
    db: Session = Depends(get_db),
):
    """Soft delete a calculator instance."""
    instance = get_live_instance(db, calculator_id)

    instance.is_deleted = True
    db.commit()

    logger.info("Deleted calculator %s", calculator_id)
    return {"deleted": True, "id": calculator_id}
