"""
Module: brickworks_kernel.db.views
Responsibility: Read access to SQL views that may not exist, and installation
    of the per-pool availability views derived from the event log.
Architecture position: Kernel > DB.  May import from db/, models/ (table
    names only), domain/stages.py and exceptions.py.

Invariants enforced:
    - A missing view is reported as ViewMissingError, never as a generic
      failure, so callers can degrade to "no data" deliberately.
    - On PostgreSQL a failed view read runs inside a SAVEPOINT, so the
      caller's transaction stays usable after a missing-view error.
    - View and table identifiers are restricted to [a-z0-9_] before being
      interpolated into DDL or queries.

Failure modes:
    - ViewMissingError: SQLSTATE 42P01 (PostgreSQL) or "no such table"
      (SQLite).
    - StoreError: any other database error, driver message passed through.
    - ValueError: unsafe identifier in a pool definition.

Audit relevance:
    Availability is derived, never stored: each view sums the quantity
    carried by a pool's events (receipts, transfers in, positive
    adjustments and batch completion output count up; transfers out and
    negative adjustments count down).
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from brickworks_kernel.domain.stages import PoolDefinition
from brickworks_kernel.exceptions import StoreError, ViewMissingError
from brickworks_kernel.logging_config import get_logger

logger = get_logger("db.views")

UNDEFINED_TABLE_SQLSTATE = "42P01"

IDENTIFIER_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")
_EVENT_TYPE = re.compile(r"^[A-Z][A-Z0-9_]*$")


def safe_identifier(name: str) -> str:
    """Return ``name`` if it is a plain lower-case SQL identifier."""
    if not IDENTIFIER_PATTERN.match(name or ""):
        raise ValueError(f"Unsafe SQL identifier: {name!r}")
    return name


def is_view_missing(exc: BaseException) -> bool:
    """True when ``exc`` says the queried relation does not exist."""
    orig = getattr(exc, "orig", exc)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == UNDEFINED_TABLE_SQLSTATE:
        return True
    return "no such table" in str(orig).lower()


def query_view(
    session: Session,
    view_name: str,
    sql: str,
    params: Mapping[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """
    Run a read against a possibly-absent view.

    Returns:
        Rows as plain dicts.

    Raises:
        ViewMissingError: The view is not provisioned.
        StoreError: Any other database failure.
    """
    statement = text(sql)
    try:
        if session.get_bind().dialect.name == "postgresql":
            with session.begin_nested():
                result = session.execute(statement, dict(params or {}))
                rows = [dict(r) for r in result.mappings()]
        else:
            result = session.execute(statement, dict(params or {}))
            rows = [dict(r) for r in result.mappings()]
    except DBAPIError as exc:
        if is_view_missing(exc):
            raise ViewMissingError(view_name) from exc
        raise StoreError(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        raise StoreError(str(exc)) from exc
    return rows


# ---------------------------------------------------------------------------
# Availability view DDL
# ---------------------------------------------------------------------------


def _quantity_expr(dialect: str, key: str) -> str:
    if dialect == "postgresql":
        return f"CAST(e.payload ->> '{key}' AS DOUBLE PRECISION)"
    return f"CAST(json_extract(e.payload, '$.{key}') AS REAL)"


def _in_list(values: Iterable[str]) -> str:
    checked = []
    for value in values:
        if not _EVENT_TYPE.match(value):
            raise ValueError(f"Unsafe event type: {value!r}")
        checked.append(f"'{value}'")
    return ", ".join(checked)


def availability_view_sql(pool: PoolDefinition, table_name: str, dialect: str) -> str:
    """SELECT body of the availability view for ``pool``."""
    view = safe_identifier(pool.availability_view)
    table = safe_identifier(table_name)
    aggregate_type = safe_identifier(pool.aggregate_type)
    qty = _quantity_expr(dialect, "quantity")
    output = _quantity_expr(dialect, "outputQuantity")

    where = ""
    if pool.required_status is not None:
        where = f"WHERE a.status = '{safe_identifier(pool.required_status)}'"

    body = f"""
SELECT
    a.tenant_id AS tenant_id,
    a.id AS pool_id,
    a.code AS code,
    COALESCE(SUM(
        CASE
            WHEN e.event_type IN ({_in_list(pool.inflow_event_types)}) THEN COALESCE({qty}, 0)
            WHEN e.event_type IN ({_in_list([pool.completion_event_type])}) THEN COALESCE({output}, 0)
            WHEN e.event_type IN ({_in_list(pool.outflow_event_types)}) THEN -COALESCE({qty}, 0)
            ELSE 0
        END
    ), 0) AS available_quantity
FROM {table} a
LEFT JOIN events e
    ON e.tenant_id = a.tenant_id
    AND e.aggregate_type = '{aggregate_type}'
    AND e.aggregate_id = a.id
{where}
GROUP BY a.tenant_id, a.id, a.code
"""
    logger.debug("availability_view_sql_built", extra={"view": view, "dialect": dialect})
    return body


def install_availability_views(engine: Engine, pools: Iterable[PoolDefinition]) -> None:
    """(Re)create one availability view per pool."""
    from brickworks_kernel.models import AGGREGATE_MODELS

    dialect = engine.dialect.name
    with engine.begin() as conn:
        for pool in pools:
            model = AGGREGATE_MODELS.get(pool.aggregate_type)
            if model is None:
                raise ValueError(f"Unknown pool aggregate type: {pool.aggregate_type}")
            view = safe_identifier(pool.availability_view)
            body = availability_view_sql(pool, model.__tablename__, dialect)
            if dialect == "postgresql":
                conn.execute(text(f"CREATE OR REPLACE VIEW {view} AS {body}"))
            else:
                conn.execute(text(f"DROP VIEW IF EXISTS {view}"))
                conn.execute(text(f"CREATE VIEW {view} AS {body}"))
            logger.info(
                "availability_view_installed",
                extra={"view": view, "pool": pool.key, "dialect": dialect},
            )


def drop_availability_views(engine: Engine, pools: Iterable[PoolDefinition]) -> None:
    with engine.begin() as conn:
        for pool in pools:
            conn.execute(text(f"DROP VIEW IF EXISTS {safe_identifier(pool.availability_view)}"))
