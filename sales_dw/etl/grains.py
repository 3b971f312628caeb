"""Grain definitions and the aggregator that materializes them.

Each fact table stores a sparse cube: only the marginal cells listed in
GRAIN_SPECS are computed. A dimension that a view does not group by is bound
to the ALL member, so every reporting grain is addressable with plain key
filters and no GROUP BY at query time.
"""
import logging
from enum import Enum

import polars as pl
from pydantic import BaseModel, ConfigDict
from sqlalchemy import Table

from sales_dw.data_access.models import ALL_NAME, product_facts, rep_facts

logger = logging.getLogger(__name__)


class TimeGrain(str, Enum):
    QUARTER = "quarter"  # group by (year, quarter)
    YEAR = "year"        # group by year, quarter = ALL
    ALL = "all"          # year = ALL, quarter = ALL


class FactTableSpec(BaseModel):
    """Shape of one fact table.

    Attributes:
        name (str): Table name.
        members (tuple[str, ...]): Member dimensions besides time, e.g. ``("product", "region")``.
        columns (tuple[str, ...]): Physical columns in table order.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    table: Table
    members: tuple[str, ...]
    columns: tuple[str, ...]

    @staticmethod
    def key_column(member: str) -> str:
        return f"{member}_key"


class GrainSpec(BaseModel):
    """Declarative aggregate view: SUM(amount) grouped by ``group_by`` and ``time``.

    Every member dimension of the fact table outside ``group_by`` is filled
    with the ALL sentinel, as are the time parts the grain does not group by.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    fact: str
    group_by: tuple[str, ...] = ()
    time: TimeGrain = TimeGrain.ALL

    @property
    def fact_table(self) -> FactTableSpec:
        return FACT_TABLES[self.fact]

    @property
    def time_columns(self) -> tuple[str, ...]:
        if self.time is TimeGrain.QUARTER:
            return ("year", "quarter")
        if self.time is TimeGrain.YEAR:
            return ("year",)
        return ()

    @property
    def grouping_columns(self) -> list[str]:
        return [*self.group_by, *self.time_columns]

    @property
    def sentinel_fill(self) -> list[str]:
        """Natural-key columns bound to ALL for this view."""
        members = [m for m in self.fact_table.members if m not in self.group_by]
        times = [t for t in ("year", "quarter") if t not in self.time_columns]
        return members + times


FACT_TABLES: dict[str, FactTableSpec] = {
    "product_facts": FactTableSpec(
        name="product_facts",
        table=product_facts,
        members=("product", "region"),
        columns=("product_key", "time_key", "region_key", "totalSold"),
    ),
    "rep_facts": FactTableSpec(
        name="rep_facts",
        table=rep_facts,
        members=("rep", "product"),
        columns=("rep_key", "time_key", "product_key", "totalSold"),
    ),
}

GRAIN_SPECS: list[GrainSpec] = [
    # product_facts
    GrainSpec(name="product_quarter_region", fact="product_facts",
              group_by=("product", "region"), time=TimeGrain.QUARTER),
    GrainSpec(name="product_quarter", fact="product_facts",
              group_by=("product",), time=TimeGrain.QUARTER),
    GrainSpec(name="product_facts_quarter_total", fact="product_facts",
              time=TimeGrain.QUARTER),
    GrainSpec(name="product_year", fact="product_facts",
              group_by=("product",), time=TimeGrain.YEAR),
    GrainSpec(name="product_facts_year_total", fact="product_facts",
              time=TimeGrain.YEAR),
    GrainSpec(name="product_total", fact="product_facts",
              group_by=("product",)),
    GrainSpec(name="region_total", fact="product_facts",
              group_by=("region",)),
    GrainSpec(name="product_facts_grand_total", fact="product_facts"),
    # rep_facts
    GrainSpec(name="rep_product_quarter", fact="rep_facts",
              group_by=("rep", "product"), time=TimeGrain.QUARTER),
    GrainSpec(name="rep_facts_quarter_total", fact="rep_facts",
              time=TimeGrain.QUARTER),
    GrainSpec(name="rep_quarter", fact="rep_facts",
              group_by=("rep",), time=TimeGrain.QUARTER),
    GrainSpec(name="rep_year", fact="rep_facts",
              group_by=("rep",), time=TimeGrain.YEAR),
    GrainSpec(name="rep_facts_year_total", fact="rep_facts",
              time=TimeGrain.YEAR),
    GrainSpec(name="rep_total", fact="rep_facts",
              group_by=("rep",)),
    GrainSpec(name="rep_facts_product_total", fact="rep_facts",
              group_by=("product",)),
    GrainSpec(name="rep_facts_grand_total", fact="rep_facts"),
]


class GrainAggregator:
    """Computes the aggregate view for any GrainSpec over transaction-grain data.

    The input frame carries the natural keys ``product``, ``region``, ``rep``,
    ``year`` (string), ``quarter`` and the measure ``amount``.
    """

    def __init__(self, transactions: pl.DataFrame) -> None:
        self.transactions = transactions

    def aggregate(self, spec: GrainSpec) -> pl.DataFrame:
        """Sums amount at the grain of ``spec``.

        Args:
            spec (GrainSpec): The view to compute.

        Returns:
            pl.DataFrame: The fact table's member columns, ``year``, ``quarter``
            and ``totalSold``; ungrouped columns hold ``ALL``.
        """
        keys = spec.grouping_columns
        total = pl.col("amount").sum().cast(pl.Int64).alias("totalSold")

        if keys:
            view = self.transactions.group_by(keys).agg(total).sort(keys)
        else:
            # Grand total: one row even when there are no transactions
            view = self.transactions.select(total)

        view = view.with_columns([pl.lit(ALL_NAME).alias(c) for c in spec.sentinel_fill])
        view = view.select(*spec.fact_table.members, "year", "quarter", "totalSold")

        logger.debug(f"View {spec.name}: {view.height} rows")
        return view
