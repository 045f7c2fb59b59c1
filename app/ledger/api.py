from fastapi import APIRouter

from app.ledger.core import config
from app.ledger.routers.audit import router as audit_router
from app.ledger.routers.expenses import router as expenses_router
from app.ledger.routers.health import router as health_router
from app.ledger.routers.metrics import router as metrics_router
from app.ledger.routers.movements import router as movements_router
from app.ledger.routers.reconciliations import router as reconciliations_router
from app.ledger.routers.sessions import router as sessions_router
from app.ledger.routers.shifts import router as shifts_router
from app.ledger.routers.withdrawals import router as withdrawals_router


def build_api_router() -> APIRouter:
    api_router = APIRouter()
    api_router.include_router(health_router)
    api_router.include_router(sessions_router, tags=["sessions"])
    api_router.include_router(shifts_router, tags=["shifts"])
    api_router.include_router(movements_router, tags=["movements"])
    api_router.include_router(withdrawals_router, tags=["withdrawals"])
    api_router.include_router(expenses_router, tags=["expenses"])
    api_router.include_router(reconciliations_router, tags=["reconciliations"])
    api_router.include_router(audit_router, tags=["audit"])
    if config.settings.METRICS_ENABLED:
        api_router.include_router(metrics_router, tags=["ops"])
    return api_router
