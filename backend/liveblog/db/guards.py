"""
Guarded writes: the optimistic-concurrency primitive behind every lifecycle and publish transition.

conditional_update() is a compare-and-swap over rows: it updates only rows that still match the
predicate (e.g. status == 'scheduled') and reports how many actually changed. A zero means another
writer got there first; callers treat that as a no-op, never as an error.
"""
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session


def conditional_update(db: Session, model, filters: list, values: dict[str, Any]) -> int:
    """UPDATE model SET values WHERE all(filters); return rowcount. Does not commit."""
    stmt = (
        update(model)
        .where(*filters)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return int(result.rowcount or 0)
