import logging

from sqlalchemy import Engine
from sqlmodel import Session, select

from sales_dw.core.exceptions import IntegrityCheckError
from sales_dw.data_access.database import open_session, rebuild_star_schema
from sales_dw.data_access.models import ALL_KEY
from sales_dw.etl.dimensions import DimensionBuilder
from sales_dw.etl.fact_loader import FactLoader
from sales_dw.etl.grains import FACT_TABLES, GRAIN_SPECS, GrainAggregator
from sales_dw.etl.pipeline import DataExtractor, DataTransformer

logger = logging.getLogger(__name__)


class WarehouseService:
    """Orchestration service for the star-schema rebuild.

    Phases run strictly in order and each commits before the next starts:
    schema rebuild, dimensions, the sixteen fact views, then a cross-table
    consistency check. A failure leaves whatever was committed so far; the
    remedy is a full re-run.
    """

    def __init__(self, normalized_engine: Engine, warehouse_engine: Engine) -> None:
        """Initializes the service with both store engines.

        Args:
            normalized_engine (Engine): Source (3NF) store.
            warehouse_engine (Engine): Target star schema store.
        """
        self.normalized_engine = normalized_engine
        self.warehouse_engine = warehouse_engine

    def run(self) -> dict[str, int]:
        """Main entry point: drops, rebuilds and reloads the star schema.

        Returns:
            dict[str, int]: Row counts for every star table.
        """
        logger.info("🏗️ Rebuilding star schema tables...")
        rebuild_star_schema(self.warehouse_engine)

        with open_session(self.normalized_engine) as source, open_session(self.warehouse_engine) as target:
            logger.info("✨ Building dimensions...")
            counts = DimensionBuilder(source, target).build_all()

            logger.info("📊 Aggregating and loading fact views...")
            transactions = DataTransformer.derive_periods(DataExtractor.extract_transactions(source))
            aggregator = GrainAggregator(transactions)
            loader = FactLoader(target)
            loader.refresh_dimensions()

            for spec in GRAIN_SPECS:
                written = loader.load(aggregator.aggregate(spec), spec)
                counts[spec.fact] = counts.get(spec.fact, 0) + written

            logger.info("🔎 Verifying grand totals...")
            self.verify_grand_totals(target, expected=int(transactions["amount"].sum()))

        logger.info(f"🏆 Star schema rebuilt: {counts}")
        return counts

    @staticmethod
    def grand_total(session: Session, fact: str) -> int | None:
        """totalSold of the row with every dimension at ALL, or None if absent."""
        spec = FACT_TABLES[fact]
        table = spec.table
        statement = select(table.c.totalSold).where(
            table.c.time_key == "ALL-ALL",
            *(table.c[spec.key_column(m)] == ALL_KEY for m in spec.members),
        )
        totals = session.exec(statement).all()
        if len(totals) != 1:
            return None
        return totals[0]

    def verify_grand_totals(self, session: Session, expected: int) -> None:
        """Both fact tables must carry exactly one grand-total row equal to SUM(amount).

        Raises:
            IntegrityCheckError: If a grand total is missing, duplicated or wrong.
        """
        for fact in FACT_TABLES:
            actual = self.grand_total(session, fact)
            if actual != expected:
                raise IntegrityCheckError(
                    f"{fact} grand total is {actual}, expected {expected} (sum of all transactions)"
                )
