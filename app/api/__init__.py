"""
API routes for the projection service.
"""

from fastapi import APIRouter

from app.api import calculations, calculators, tax_brackets

router = APIRouter()

# Include sub-routers
router.include_router(calculations.router, prefix="/calculate", tags=["calculations"])
router.include_router(calculators.router, prefix="/calculators", tags=["calculators"])
router.include_router(tax_brackets.router, prefix="/tax-brackets", tags=["tax-brackets"])
