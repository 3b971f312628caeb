import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import polars as pl
from sqlalchemy import Engine, Table, event
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, text
from sqlmodel.sql.expression import Select, SelectOfScalar

from sales_dw.core.exceptions import ConnectivityError, SchemaError
from sales_dw.data_access.models import NORMALIZED_TABLES, STAR_TABLES


logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    """SQLite ignores REFERENCES clauses unless the pragma is set per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON;")
    cursor.close()


def create_store_engine(database_url: str, **kwargs: Any) -> Engine:
    """Builds an engine for either store and verifies it is reachable.

    Args:
        database_url (str): SQLAlchemy URL of the store.
        **kwargs: Extra arguments forwarded to ``create_engine``.

    Returns:
        Engine: A connected engine with foreign keys enforced on SQLite.

    Raises:
        ConnectivityError: If the first connection attempt fails.
    """
    engine = create_engine(database_url, pool_pre_ping=True, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except OperationalError as e:
        raise ConnectivityError(f"Cannot reach store at {engine.url!r}: {e}") from e
    return engine


@contextmanager
def open_session(engine: Engine) -> Iterator[Session]:
    """Scoped session; a store that drops mid-run surfaces as ConnectivityError."""
    try:
        with Session(engine) as session:
            yield session
    except OperationalError as e:
        if e.connection_invalidated:
            raise ConnectivityError(str(e)) from e
        raise


def _rebuild(engine: Engine, tables: Sequence[Table], label: str) -> None:
    try:
        SQLModel.metadata.drop_all(engine, tables=list(tables))
        SQLModel.metadata.create_all(engine, tables=list(tables))
    except OperationalError as e:
        if e.connection_invalidated:
            raise ConnectivityError(str(e)) from e
        raise SchemaError(f"Failed to rebuild {label} schema: {e}") from e
    except SQLAlchemyError as e:
        raise SchemaError(f"Failed to rebuild {label} schema: {e}") from e
    logger.info(f"{label} schema rebuilt: {', '.join(t.name for t in tables)}")


def rebuild_normalized_schema(engine: Engine) -> None:
    """Drops and recreates salestxn, customers, products, reps, countries, territories."""
    _rebuild(engine, NORMALIZED_TABLES, "Normalized")


def rebuild_star_schema(engine: Engine) -> None:
    """Drops and recreates the fact tables and their dimensions.

    drop_all orders by foreign-key dependency, so facts go before dimensions.
    """
    _rebuild(engine, STAR_TABLES, "Star")


def read_frame(session: Session, statement: Select | SelectOfScalar, schema: dict[str, Any]) -> pl.DataFrame:
    """Executes a select and returns the rows as a polars DataFrame.

    Columns are named by ``schema`` in selection order, and the schema is
    applied explicitly so empty results still have their columns.
    """
    results = session.exec(statement).all()
    if isinstance(statement, SelectOfScalar):
        rows = [(value,) for value in results]
    else:
        rows = [tuple(row) for row in results]
    return pl.DataFrame(rows, schema=schema, orient="row")


def write_frame(session: Session, df: pl.DataFrame, table: Table) -> int:
    """Appends every row of ``df`` to ``table`` in the session's transaction."""
    records = df.to_dicts()
    if not records:
        return 0
    session.execute(table.insert(), records)
    return len(records)

