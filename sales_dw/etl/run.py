"""Single run entry point: XML -> normalized store -> star schema.

Usage: ``python -m sales_dw.etl.run`` (or the ``sales-dw`` console script).
Connection URLs and the XML folder come from Settings (``.env``).
"""
import logging
import sys
from pathlib import Path

from sales_dw.core.config import Settings, settings
from sales_dw.core.exceptions import SalesWarehouseError
from sales_dw.data_access.database import create_store_engine
from sales_dw.services.ingestion_service import IngestionService
from sales_dw.services.warehouse_service import WarehouseService

logger = logging.getLogger(__name__)


def run_pipeline(config: Settings) -> dict[str, int]:
    """Ingests the XML folder and rebuilds the warehouse; engines are always disposed."""
    normalized_engine = create_store_engine(config.NORMALIZED_DATABASE_URL)
    try:
        warehouse_engine = create_store_engine(config.WAREHOUSE_DATABASE_URL)
        try:
            counts = IngestionService(normalized_engine).run(
                Path(config.TXN_XML_DIR), config.REPS_XML_PATTERN, config.TXN_XML_PATTERN
            )
            counts.update(WarehouseService(normalized_engine, warehouse_engine).run())
            return counts
        finally:
            warehouse_engine.dispose()
    finally:
        normalized_engine.dispose()


def main() -> int:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler()]
    )
    try:
        counts = run_pipeline(settings)
    except SalesWarehouseError as e:
        logger.error(f"❌ Pipeline failed ({type(e).__name__}): {e}")
        return 1

    logger.info(f"✅ Pipeline complete: {counts}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
