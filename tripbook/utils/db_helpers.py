"""
Database Helper Utilities for Concurrency Control

Every state transition is a compare-and-set UPDATE, so no row locks are
taken and the same code runs on PostgreSQL and SQLite.
"""

import logging
from typing import TypeVar, Type, Dict, Any

from sqlalchemy import update
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar('T')


def compare_and_set(
    db: Session,
    model: Type[T],
    filter_condition,
    values: Dict[str, Any],
) -> bool:
    """
    Apply ``values`` to the row(s) matching ``filter_condition`` in a single
    UPDATE statement.

    The precondition (expected status, expected version, ``IS NULL`` marker)
    belongs in ``filter_condition`` so check and write are one atomic
    statement. Returns True when exactly one row was updated. Does not commit.

    Example:
        won = compare_and_set(
            db, BookingDraft,
            and_(BookingDraft.id == draft_id, BookingDraft.status == "ready_for_payment"),
            {"status": "completed"},
        )
    """
    stmt = (
        update(model)
        .where(filter_condition)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount > 1:
        # Filters always include the primary key, more than one row is a bug
        logger.error(f"compare_and_set on {model.__name__} matched {result.rowcount} rows")
    return result.rowcount == 1
