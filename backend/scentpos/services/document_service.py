# Overview: Order-number allocation backed by per-store document sequences.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


ORDER_DOCUMENT = "ORDER"
HOLD_DOCUMENT = "HOLD"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    store_id: int,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for a store/type, e.g. "ORD-001-000042".

    Runs inside the caller's transaction: the counter increment commits or
    rolls back together with the order that consumes it, so a failed
    settlement never burns a number. The zero-padded counter keeps numbers
    unique and lexically sortable per store.
    """
    if not store_id:
        raise DocumentSequenceError("store_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.store_id == store_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(store_id=store_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(
                    DocumentSequence(store_id=store_id, document_type=document_type, next_number=2)
                )
            next_num = 1
        except IntegrityError:
            # Another transaction created the row first; take the next slot.
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError("could not allocate document number")
            current = (
                db.session.query(DocumentSequence.next_number)
                .filter_by(store_id=store_id, document_type=document_type)
                .scalar()
            )
            next_num = current - 1

    return f"{prefix}-{store_id:03d}-{next_num:0{pad}d}"
