"""
Module: brickworks_kernel.db.upsert
Responsibility: Dialect-aware "insert unless the natural key exists" primitive.
Architecture position: Kernel > DB.

Invariants enforced:
    - On PostgreSQL and SQLite the insert is a single
      INSERT ... ON CONFLICT (key) DO NOTHING statement, so two concurrent
      creates with the same natural key yield exactly one row.
    - Existing rows are never modified.

Failure modes:
    - IntegrityError on other dialects when a concurrent insert wins the
      race between the existence check and the insert.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import insert as generic_insert
from sqlalchemy import select
from sqlalchemy.orm import Session


def insert_if_absent(
    session: Session,
    model: type,
    key_columns: Sequence[str],
    values: Mapping[str, Any],
) -> bool:
    """
    Insert ``values`` into ``model``'s table unless a row with the same
    ``key_columns`` already exists.

    Returns:
        True when a row was inserted.
    """
    dialect = session.get_bind().dialect.name

    if dialect in ("postgresql", "sqlite"):
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert

        stmt = insert(model).values(**values).on_conflict_do_nothing(
            index_elements=list(key_columns),
        )
        result = session.execute(stmt)
        return result.rowcount == 1

    existing = session.execute(
        select(model.id).where(*(getattr(model, c) == values[c] for c in key_columns))
    ).first()
    if existing is not None:
        return False
    session.execute(generic_insert(model).values(**values))
    return True
