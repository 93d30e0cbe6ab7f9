from fastapi import APIRouter

from .endpoints import health, mukando, observability

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(mukando.router)
router.include_router(observability.router)
