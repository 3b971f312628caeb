# 1. Standard Library
from collections.abc import Callable, Generator
from typing import Any

# 2. Third-Party Libraries
import polars as pl
import pytest
from sqlalchemy import Engine
from sqlalchemy.pool import StaticPool

# 3. Application Layers
from sales_dw.data_access.database import create_store_engine
from sales_dw.etl.normalized_loader import NormalizedStoreLoader
from sales_dw.etl.pipeline import REP_SCHEMA, TXN_SCHEMA
from sales_dw.services.warehouse_service import WarehouseService


REPS = [
    ("r101", "Helmut", "Schwab", "EMEA"),
    ("r102", "Lynette", "McRowe", "East"),
    ("r103", "Aneeta", "Kappoorthy", "West"),
]

# Transactions from the three-date scenario: 100 + 200 in 2020, 50 in 2021
SCENARIO_TXNS = [
    ("1_1", "02/15/2020", "Acme Pharmacy", "Zalofen", 1, 100, "USA", "r101"),
    ("1_2", "05/10/2020", "Berlin Apotheke", "Aspirin", 2, 200, "Germany", "r102"),
    ("1_3", "01/01/2021", "Acme Pharmacy", "Zalofen", 1, 50, "USA", "r103"),
]


def _memory_engine() -> Engine:
    """Isolated in-memory SQLite store shared by every session of one engine."""
    return create_store_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture(name="normalized_engine")
def normalized_engine_fixture() -> Generator[Engine, Any, None]:
    engine = _memory_engine()
    yield engine
    engine.dispose()


@pytest.fixture(name="warehouse_engine")
def warehouse_engine_fixture() -> Generator[Engine, Any, None]:
    engine = _memory_engine()
    yield engine
    engine.dispose()


@pytest.fixture(name="load_normalized")
def load_normalized_fixture(normalized_engine: Engine) -> Callable[..., dict[str, int]]:
    """Loads the normalized store from in-memory records instead of XML."""
    def _load(txns: list[tuple], reps: list[tuple] = REPS) -> dict[str, int]:
        return NormalizedStoreLoader(normalized_engine).load(
            pl.DataFrame(reps, schema=REP_SCHEMA, orient="row"),
            pl.DataFrame(txns, schema=TXN_SCHEMA, orient="row"),
        )
    return _load


@pytest.fixture(name="scenario_warehouse")
def scenario_warehouse_fixture(
    load_normalized: Callable[..., dict[str, int]],
    normalized_engine: Engine,
    warehouse_engine: Engine,
) -> dict[str, int]:
    """Star schema fully built from SCENARIO_TXNS; returns the run summary."""
    load_normalized(SCENARIO_TXNS)
    return WarehouseService(normalized_engine, warehouse_engine).run()
