from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.ledger.core.capabilities import Capability
from app.ledger.core import config
from app.ledger.core.deps import get_current_actor, require_actor_capability
from app.ledger.core.policy import LedgerPolicy
from app.ledger.db.session import get_db
from app.ledger.schemas.reconciliations import (
    BreakdownTemplateResponse,
    ReconciliationApproveRequest,
    ReconciliationListResponse,
    ReconciliationResponse,
    reconciliation_response,
)
from app.ledger.services.audit import record_ledger_event
from app.ledger.services.reconciliation import ReconciliationEngine, breakdown_template


router = APIRouter()


@router.get("/ledger/reconciliations/breakdown-template", response_model=BreakdownTemplateResponse)
def get_breakdown_template(_actor=Depends(require_actor_capability(Capability.VIEW))):
    return BreakdownTemplateResponse(currency=config.settings.CURRENCY, rows=breakdown_template(LedgerPolicy.from_settings()))


@router.get("/ledger/reconciliations/pending", response_model=ReconciliationListResponse)
def list_pending_reconciliations(
    _actor=Depends(require_actor_capability(Capability.APPROVE_RECONCILIATION)),
    db=Depends(get_db),
):
    rows = ReconciliationEngine(db).list_pending()
    return ReconciliationListResponse(rows=[reconciliation_response(row) for row in rows], total=len(rows))


@router.get("/ledger/reconciliations/{reconciliation_id}", response_model=ReconciliationResponse)
def get_reconciliation(
    reconciliation_id: UUID,
    _actor=Depends(require_actor_capability(Capability.VIEW)),
    db=Depends(get_db),
):
    return reconciliation_response(ReconciliationEngine(db).get(reconciliation_id))


@router.post("/ledger/reconciliations/{reconciliation_id}/approve", response_model=ReconciliationResponse)
def approve_reconciliation(
    request: Request,
    reconciliation_id: UUID,
    payload: ReconciliationApproveRequest,
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    reconciliation = ReconciliationEngine(db).approve(reconciliation_id, actor, payload.notes)
    response = reconciliation_response(reconciliation)
    record_ledger_event(
        db,
        request,
        actor,
        action="reconciliation.approve",
        entity_type="reconciliation",
        entity_id=reconciliation.id,
        session_id=reconciliation.session_id,
        before={"status": "PENDING_APPROVAL"},
        after={"status": reconciliation.status.value, "difference": reconciliation.difference},
        metadata={"approval_notes": reconciliation.approval_notes},
    )
    return response
