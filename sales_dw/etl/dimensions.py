import logging

import polars as pl
from sqlalchemy import Table
from sqlmodel import Session, col, select

from sales_dw.core.exceptions import SourceDataError
from sales_dw.data_access.database import read_frame
from sales_dw.data_access.models import (
    ALL_KEY,
    ALL_NAME,
    DateDim,
    Product,
    ProductDim,
    RegionDim,
    Rep,
    RepDim,
    SalesTxn,
    Territory,
)
from sales_dw.etl.pipeline import DataLoader, DataTransformer, DateDimensionGenerator

logger = logging.getLogger(__name__)


def with_all_member(names: pl.Series, key_column: str, name_column: str) -> pl.DataFrame:
    """Projects distinct names into dimension rows plus the ALL sentinel.

    Real members are keyed 1..N in first-seen order; the ALL row comes last
    with key 0, so the real keys stay contiguous.

    Raises:
        SourceDataError: If a real member is itself named ``ALL``.
    """
    members = DataTransformer.number_members(names, key_column, name_column)
    if members.filter(pl.col(name_column) == ALL_NAME).height:
        raise SourceDataError(f"'{ALL_NAME}' is reserved and cannot be a real {name_column}")

    sentinel = pl.DataFrame({key_column: [ALL_KEY], name_column: [ALL_NAME]}, schema=members.schema)
    return pl.concat([members, sentinel])


class DimensionBuilder:
    """Derives the star-schema dimensions from the normalized store.

    Each ``build_*`` method reads its source entity, writes the dimension and
    commits, so the Fact Loader can resolve against it straight away.
    """

    def __init__(self, source: Session, target: Session) -> None:
        """Initializes the builder with both store sessions.

        Args:
            source (Session): Session on the normalized store (read only).
            target (Session): Session on the star schema store.
        """
        self.source = source
        self.target = target

    def _load(self, df: pl.DataFrame, table: Table) -> pl.DataFrame:
        DataLoader.load_to_sql(self.target, df, table)
        return df

    def build_product_dim(self) -> pl.DataFrame:
        products = read_frame(
            self.source,
            select(Product.productName).order_by(col(Product.productID)),
            {"productName": pl.String},
        )
        return self._load(
            with_all_member(products["productName"], "productID", "productName"),
            ProductDim.__table__,
        )

    def build_region_dim(self) -> pl.DataFrame:
        territories = read_frame(
            self.source,
            select(Territory.territoryName).order_by(col(Territory.territoryID)),
            {"territoryName": pl.String},
        )
        return self._load(
            with_all_member(territories["territoryName"], "regionID", "regionName"),
            RegionDim.__table__,
        )

    def build_rep_dim(self) -> pl.DataFrame:
        """Rep members are full names (``firstName lastName``)."""
        reps = read_frame(
            self.source,
            select(Rep.firstName, Rep.lastName).order_by(col(Rep.repID)),
            {"firstName": pl.String, "lastName": pl.String},
        )
        names = reps.select(DataTransformer.full_name("firstName", "lastName").alias("repName"))
        return self._load(
            with_all_member(names["repName"], "repID", "repName"),
            RepDim.__table__,
        )

    def build_date_dim(self) -> pl.DataFrame:
        """Quarter/year/all lattice over the transaction dates.

        Raises:
            SourceDataError: If a stored date is malformed or its month is out of range.
        """
        dates = read_frame(self.source, select(SalesTxn.date), {"date": pl.String})
        periods = DataTransformer.derive_periods(dates)
        return self._load(DateDimensionGenerator.generate(periods), DateDim.__table__)

    def build_all(self) -> dict[str, int]:
        """Builds every dimension; returns row counts per dimension table."""
        counts = {
            "product_dim": self.build_product_dim().height,
            "region_dim": self.build_region_dim().height,
            "rep_dim": self.build_rep_dim().height,
            "date_dim": self.build_date_dim().height,
        }
        logger.info(f"Dimensions built: {counts}")
        return counts
