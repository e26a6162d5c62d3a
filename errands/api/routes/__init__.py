"""
API Routes
"""
from fastapi import APIRouter

from errands.api.routes.payments import router as payments_router
from errands.api.routes.balance import router as balance_router

router = APIRouter()

router.include_router(payments_router, prefix="/payment", tags=["Payments"])
router.include_router(balance_router, prefix="/balance", tags=["Balance"])
