# Overview: Order number allocation backed by per-organization sequences.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import OrderSequence


ORDER_NUMBER_PREFIX = "PO"


def next_order_number(*, organization_id: int, prefix: str = ORDER_NUMBER_PREFIX, pad: int = 6) -> str:
    """
    Allocate the next order number for an organization, e.g. "PO-007-000042".

    Must run inside the caller's transaction so that a rolled-back approval
    also gives its number back.

    The increment is a single UPDATE, which serializes concurrent callers on
    the sequence row. When two transactions race to create the first row for
    an organization, the loser hits the unique constraint; that IntegrityError
    propagates so the caller's retry loop re-runs the whole unit of work.
    """
    if not organization_id:
        raise ValueError("organization_id is required")

    stmt = (
        update(OrderSequence)
        .where(OrderSequence.organization_id == organization_id)
        .values(next_number=OrderSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(OrderSequence.next_number)
            .filter_by(organization_id=organization_id)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = OrderSequence(organization_id=organization_id, next_number=2)
        db.session.add(seq)
        db.session.flush()
        next_num = 1

    return f"{prefix}-{organization_id:03d}-{next_num:0{pad}d}"
