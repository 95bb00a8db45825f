"""
SQLAlchemy ORM models for stored calculator state and tax settings.
"""

from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    DateTime,
    JSON,
    Text,
)
from sqlalchemy.orm import declarative_base
import uuid

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


class AuditMixin:
    """Mixin for audit fields on all models."""

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
    created_by = Column(String(255), nullable=True)
    updated_by = Column(String(255), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)


class CalculatorInstance(AuditMixin, Base):
    """A named, saved calculator with its inputs and last computed output."""

    __tablename__ = "calculator_instances"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    calculator_type = Column(String(50), default="real_estate_portfolio")
    description = Column(Text)

    # Owning client record in the entity store (not managed here)
    client_id = Column(String(255), nullable=True, index=True)

    # {"inputs": ProjectionAssumptions, "output": ProjectionResult.to_dict()}
    state = Column(JSON, default=dict)
    last_run_at = Column(DateTime, nullable=True)


class TaxBracketSchedule(AuditMixin, Base):
    """Marginal tax brackets for one tax year and jurisdiction."""

    __tablename__ = "tax_bracket_schedules"

    id = Column(String, primary_key=True, default=generate_uuid)
    year = Column(Integer, nullable=False, index=True)
    jurisdiction = Column(String(50), nullable=False, index=True)

    # [{"upper_bound": 51446.0, "rate": 0.2005}, ..., {"upper_bound": null, "rate": 0.4829}]
    brackets = Column(JSON, default=list)
