from fastapi import APIRouter

from .endpoints import (
    health,
    loyalty,
    observability,
    qr,
    redemptions,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(qr.router)
router.include_router(loyalty.router)
router.include_router(redemptions.router)
router.include_router(observability.router)
