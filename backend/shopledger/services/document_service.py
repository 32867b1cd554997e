# Overview: Service-layer operations for document codes; encapsulates sequence allocation.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from shopledger.time_utils import day_stamp
from .errors import ValidationError


SALE_ORDER_PREFIX = "SO"
PURCHASE_ORDER_PREFIX = "PO"


def _bump(prefix: str, day: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.prefix == prefix,
            DocumentSequence.day == day,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(prefix=prefix, day=day)
        .scalar()
    )
    return current - 1


def generate_code(prefix: str, *, now: datetime | None = None, pad: int | None = None) -> str:
    """
    Allocate the next human-readable code for `prefix` today, e.g. SO-20261019-001.

    Runs inside the caller's unit of work (no commit), so a rolled-back order
    also gives its number back. The sequence row is bumped with an atomic
    UPDATE; the first code of the day inserts the row under a savepoint so a
    concurrent first insert degrades to a bump instead of failing the unit.
    """
    if not prefix:
        raise ValidationError("prefix is required")
    if pad is None:
        pad = current_app.config.get("ORDER_CODE_PAD", 3)

    day = day_stamp(now)
    number = _bump(prefix, day)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(prefix=prefix, day=day, next_number=2))
            number = 1
        except IntegrityError:
            number = _bump(prefix, day)
            if number is None:
                raise

    return f"{prefix}-{day}-{number:0{pad}d}"
