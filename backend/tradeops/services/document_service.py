# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from tradeops.time_utils import current_year


DOCUMENT_TYPE_ORDER = "ORDER"
DOCUMENT_TYPE_PURCHASE_ORDER = "PURCHASE_ORDER"
DOCUMENT_TYPE_SHIPMENT = "SHIPMENT"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _allocate(document_type: str, period: str) -> int:
    """
    Reserve the next number for (document_type, period) inside the caller's transaction.

    The UPDATE takes a row lock, so concurrent callers serialize on the
    sequence row. The first allocation for a period inserts the row; losing
    that insert race falls back to the UPDATE path.
    """
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        seq = DocumentSequence(document_type=document_type, period=period, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, period=period)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    year: int | None = None,
    pad: int = 3,
) -> str:
    """
    Allocate the next human-readable number, e.g. ORD-2026-001.

    Runs in the caller's transaction; the number is only consumed if that
    transaction commits.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    year = year or current_year()
    next_num = _allocate(document_type, str(year))
    return f"{prefix}-{year}-{next_num:0{pad}d}"


def next_order_number() -> str:
    return next_document_number(
        document_type=DOCUMENT_TYPE_ORDER,
        prefix=current_app.config.get("ORDER_NUMBER_PREFIX", "ORD"),
    )


def next_purchase_order_number() -> str:
    return next_document_number(
        document_type=DOCUMENT_TYPE_PURCHASE_ORDER,
        prefix=current_app.config.get("PURCHASE_ORDER_NUMBER_PREFIX", "PO"),
    )


def next_shipment_number() -> str:
    return next_document_number(
        document_type=DOCUMENT_TYPE_SHIPMENT,
        prefix=current_app.config.get("SHIPMENT_NUMBER_PREFIX", "SHIP"),
    )
