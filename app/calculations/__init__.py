"""
Financial Projection Engine

Pure, synchronous calculation modules shared by every calculator:
amortization, indexation, progressive tax, asset lifecycle and the
portfolio projector that drives them.
"""

from app.calculations import (
    amortization,
    indexation,
    tax,
    lifecycle,
    projection,
    assumptions,
)

__all__ = [
    "amortization",
    "indexation",
    "tax",
    "lifecycle",
    "projection",
    "assumptions",
]
