from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ledgercore.clock import default_clock
from ledgercore.db import get_db
from ledgercore.intercompany import schemas
from ledgercore.intercompany.reconciliation import (
    ReconcileStatus,
    auto_reconcile,
    build_reconciliation_report,
    get_unreconciled,
    manual_reconcile,
)
from ledgercore.intercompany.service import (
    MirrorResult,
    add_company_relationship,
    are_companies_related,
    get_balances_for_company,
    record_intercompany_invoice,
    record_intercompany_payment,
)

router = APIRouter(prefix="/api/intercompany", tags=["intercompany"])

RECONCILE_ERRORS = {
    ReconcileStatus.NOT_FOUND: 404,
    ReconcileStatus.SAME_TRANSACTION: 400,
    ReconcileStatus.AMOUNT_MISMATCH: 400,
    ReconcileStatus.ALREADY_RECONCILED: 409,
}


def _ensure_related(db: Session, company_id: int, counterparty_company_id: int) -> None:
    if not are_companies_related(db, company_id, counterparty_company_id):
        raise HTTPException(status_code=409, detail="Companies are not part of the same group.")


def _to_response(result: MirrorResult) -> schemas.MirrorResponse:
    return schemas.MirrorResponse(
        status=result.status.value,
        primary=schemas.IntercompanyTransactionResponse.model_validate(result.primary),
        counterpart=(
            schemas.IntercompanyTransactionResponse.model_validate(result.counterpart)
            if result.counterpart is not None
            else None
        ),
        message=result.message,
    )


@router.post("/invoices", response_model=schemas.MirrorResponse, status_code=status.HTTP_201_CREATED)
def record_invoice(payload: schemas.IntercompanyInvoiceCreate, db: Session = Depends(get_db)):
    _ensure_related(db, payload.invoicing_company_id, payload.customer_company_id)
    try:
        result = record_intercompany_invoice(db, **payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _to_response(result)


@router.post("/payments", response_model=schemas.MirrorResponse, status_code=status.HTTP_201_CREATED)
def record_payment(payload: schemas.IntercompanyPaymentCreate, db: Session = Depends(get_db)):
    _ensure_related(db, payload.paying_company_id, payload.receiving_company_id)
    try:
        result = record_intercompany_payment(db, **payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _to_response(result)


@router.get("/balances/{company_id}", response_model=list[schemas.IntercompanyBalanceResponse])
def list_balances(company_id: int, db: Session = Depends(get_db)):
    return get_balances_for_company(db, company_id)


@router.get("/unreconciled", response_model=list[schemas.IntercompanyTransactionResponse])
def list_unreconciled(company_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    return get_unreconciled(db, company_id)


@router.post("/reconcile/auto", response_model=schemas.AutoReconcileResponse)
def reconcile_automatically(company_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    reconciled_count = auto_reconcile(db, company_id)
    db.commit()
    return schemas.AutoReconcileResponse(reconciled_count=reconciled_count)


@router.post("/reconcile/manual")
def reconcile_manually(payload: schemas.ManualReconcileRequest, db: Session = Depends(get_db)):
    result = manual_reconcile(
        db,
        payload.transaction_id,
        payload.counterpart_transaction_id,
        payload.reconciled_by,
    )
    if not result.ok:
        raise HTTPException(status_code=RECONCILE_ERRORS.get(result.status, 400), detail=result.message)
    db.commit()
    return {"status": result.status.value}


@router.get("/report/{company_id}", response_model=schemas.ReconciliationReportResponse)
def reconciliation_report(
    company_id: int,
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    report = build_reconciliation_report(db, company_id, as_of or default_clock.today())
    if report is None:
        raise HTTPException(status_code=404, detail="Company not found")
    return report


@router.post(
    "/relationships",
    response_model=schemas.CompanyRelationshipResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_relationship(payload: schemas.CompanyRelationshipCreate, db: Session = Depends(get_db)):
    try:
        relationship = add_company_relationship(db, **payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return relationship
