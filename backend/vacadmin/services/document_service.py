# Overview: Human-readable document number allocation.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


def next_document_number(*, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Allocate the next number for a document type, restarting every day.

    Produces e.g. SO-20261019-0001. Must run inside the caller's write
    transaction; the UPDATE takes the row lock before the read.
    """
    period = utcnow().strftime("%Y%m%d")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, period=period)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, period=period, next_number=2))
        db.session.flush()
        number = 1

    return f"{prefix}-{period}-{str(number).zfill(pad)}"
