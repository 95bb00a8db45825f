"""
Database configuration and models.
"""

from app.db.database import engine, SessionLocal, get_db, get_db_context, init_db
from app.db.models import Base, CalculatorInstance, TaxBracketSchedule

__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
    "Base",
    "CalculatorInstance",
    "TaxBracketSchedule",
]
