import logging
from collections.abc import Generator
from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import Engine
from sqlmodel import Session

from sales_dw.api.auth import authenticate
from sales_dw.core.config import settings
from sales_dw.core.exceptions import SalesWarehouseError
from sales_dw.data_access.database import create_store_engine, open_session
from sales_dw.domain.reports import QuarterlySales, TopMember
from sales_dw.etl.run import run_pipeline
from sales_dw.services.report_service import ReportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


@lru_cache
def get_warehouse_engine() -> Engine:
    return create_store_engine(settings.WAREHOUSE_DATABASE_URL)

def get_warehouse_session() -> Generator[Session, None, None]:
    """FastAPI dependency to provide a star schema session."""
    with open_session(get_warehouse_engine()) as session:
        yield session


# --- 1. ADMIN & PIPELINE ---
@router.post("/pipeline/run", tags=["Admin"])
def run_warehouse_pipeline(username: Annotated[str, Depends(authenticate)]) -> dict[str, str]:
    """Ingests the XML folder and rebuilds the star schema from scratch."""
    try:
        counts = run_pipeline(settings)
    except SalesWarehouseError as e:
        logger.error(f"❌ Pipeline failed: {e!s}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"status": "error", "error": type(e).__name__, "message": str(e)},
        ) from e

    summary = ", ".join(f"{table}={rows}" for table, rows in counts.items())
    return {"status": "success", "message": f"Pipeline complete: {summary}"}


# --- 2. REPORTS ---
@router.get("/reports/top-reps", tags=["Reports"])
def read_top_reps(
    session: Annotated[Session, Depends(get_warehouse_session)],
    username: Annotated[str, Depends(authenticate)],
    n: Annotated[int, Query(description="Number of reps to return")] = 5,
) -> list[TopMember]:
    """Top-N reps by total sold, with per-year totals."""
    return ReportService(session).top_reps(n)

@router.get("/reports/top-products", tags=["Reports"])
def read_top_products(
    session: Annotated[Session, Depends(get_warehouse_session)],
    username: Annotated[str, Depends(authenticate)],
    n: Annotated[int, Query(description="Number of products to return")] = 5,
) -> list[TopMember]:
    """Top-N products by total sold, with per-year totals."""
    return ReportService(session).top_products(n)

@router.get("/reports/quarterly-sales", tags=["Reports"])
def read_quarterly_sales(
    session: Annotated[Session, Depends(get_warehouse_session)],
    username: Annotated[str, Depends(authenticate)],
) -> list[QuarterlySales]:
    """Total sold per quarter across all products and regions."""
    return ReportService(session).quarterly_sales()
