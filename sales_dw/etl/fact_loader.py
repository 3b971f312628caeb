import logging

import polars as pl
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from sales_dw.core.exceptions import ResolutionError
from sales_dw.data_access.database import read_frame
from sales_dw.data_access.models import DateDim, ProductDim, RegionDim, RepDim
from sales_dw.etl.grains import FactTableSpec, GrainSpec
from sales_dw.etl.pipeline import DataLoader, DateDimensionGenerator

logger = logging.getLogger(__name__)


class DimensionLookup(BaseModel):
    """Committed contents of one dimension table: surrogate key <-> natural name."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    table: str
    key_column: str
    name_column: str
    rows: pl.DataFrame


# member -> (dimension model, key column, name column)
DIMENSION_TABLES = {
    "product": (ProductDim, "productID", "productName"),
    "region": (RegionDim, "regionID", "regionName"),
    "rep": (RepDim, "repID", "repName"),
}


def resolve(
    records: pl.DataFrame,
    dimension: DimensionLookup,
    match_column: str,
    key_column: str,
    view: str,
) -> pl.DataFrame:
    """Attaches surrogate keys to records by exact match on the natural name.

    Args:
        records (pl.DataFrame): Aggregated view rows holding ``match_column``.
        dimension (DimensionLookup): The dimension to resolve against.
        match_column (str): Natural-key column in ``records``.
        key_column (str): Name of the surrogate-key column to add.
        view (str): View name, reported when resolution fails.

    Returns:
        pl.DataFrame: ``records`` plus ``key_column``.

    Raises:
        ResolutionError: If any name has no row in the dimension.
    """
    lookup = dimension.rows.select(
        pl.col(dimension.name_column).alias(match_column),
        pl.col(dimension.key_column).alias(key_column),
    )
    resolved = records.join(lookup, on=match_column, how="left")

    missing = resolved.filter(pl.col(key_column).is_null())[match_column].unique()
    if missing.len():
        raise ResolutionError(view, dimension.table, missing.to_list())
    return resolved


class FactLoader:
    """Resolves aggregated views to surrogate keys and appends them to fact tables.

    Dimensions are read back from the star store, so only committed rows are
    ever used for resolution.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.dimensions: dict[str, DimensionLookup] = {}
        self.time_ids: pl.DataFrame = pl.DataFrame(schema={"time_key": pl.String})

    def refresh_dimensions(self) -> None:
        """Reloads every dimension lookup from the star store."""
        for member, (model, key_column, name_column) in DIMENSION_TABLES.items():
            rows = read_frame(
                self.session,
                select(getattr(model, key_column), getattr(model, name_column)),
                {key_column: pl.Int64, name_column: pl.String},
            )
            self.dimensions[member] = DimensionLookup(
                table=model.__tablename__, key_column=key_column, name_column=name_column, rows=rows
            )
        self.time_ids = read_frame(
            self.session, select(DateDim.timeID), {"time_key": pl.String}
        )

    def _check_time_keys(self, rows: pl.DataFrame, view: str) -> None:
        missing = rows.join(self.time_ids, on="time_key", how="anti")["time_key"].unique()
        if missing.len():
            raise ResolutionError(view, "date_dim", missing.to_list())

    def to_fact_rows(self, view: pl.DataFrame, spec: GrainSpec) -> pl.DataFrame:
        """Turns natural-key view rows into physical fact rows.

        Raises:
            ResolutionError: If a member name or time key has no dimension row.
        """
        if not self.dimensions:
            self.refresh_dimensions()

        fact: FactTableSpec = spec.fact_table
        rows = view
        for member in fact.members:
            rows = resolve(
                rows,
                self.dimensions[member],
                match_column=member,
                key_column=FactTableSpec.key_column(member),
                view=spec.name,
            )

        rows = rows.with_columns(
            DateDimensionGenerator.time_key(pl.col("year"), pl.col("quarter")).alias("time_key")
        )
        self._check_time_keys(rows, spec.name)
        return rows.select(fact.columns)

    def load(self, view: pl.DataFrame, spec: GrainSpec) -> int:
        """Resolves and appends one view; nothing is written if resolution fails.

        Args:
            view (pl.DataFrame): Output of GrainAggregator.aggregate for ``spec``.
            spec (GrainSpec): The view's definition.

        Returns:
            int: Number of fact rows appended.
        """
        fact_rows = self.to_fact_rows(view, spec)
        count = DataLoader.load_to_sql(self.session, fact_rows, spec.fact_table.table)
        logger.info(f"View {spec.name}: {count} rows -> {spec.fact}")
        return count
