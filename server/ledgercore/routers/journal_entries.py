from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ledgercore.accounting import schemas
from ledgercore.accounting.results import PostingStatus
from ledgercore.accounting.service import get_by_source, reverse_journal_entry
from ledgercore.db import get_db

router = APIRouter(prefix="/api/journal-entries", tags=["journal-entries"])

REVERSAL_ERRORS = {
    PostingStatus.NOT_FOUND: 404,
    PostingStatus.ALREADY_REVERSED: 409,
    PostingStatus.NOT_REVERSIBLE: 409,
}


@router.get("/by-source", response_model=list[schemas.JournalEntryResponse])
def list_entries_for_source(
    source_type: str = Query(..., min_length=1),
    source_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    return get_by_source(db, source_type, source_id)


@router.post("/{entry_id}/reverse", response_model=schemas.JournalEntryResponse, status_code=201)
def reverse_entry(entry_id: int, payload: schemas.JournalReversalCreate, db: Session = Depends(get_db)):
    result = reverse_journal_entry(db, entry_id, reversed_by=payload.reversed_by, reason=payload.reason)
    if not result.ok:
        raise HTTPException(status_code=REVERSAL_ERRORS.get(result.status, 400), detail=result.message)
    db.commit()
    db.refresh(result.entry)
    return result.entry
