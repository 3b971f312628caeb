import logging

import polars as pl
from sqlalchemy import Engine
from sqlalchemy.exc import IntegrityError

from sales_dw.core.exceptions import SchemaError
from sales_dw.data_access.database import open_session, rebuild_normalized_schema
from sales_dw.data_access.models import Country, Customer, Product, Rep, SalesTxn, Territory
from sales_dw.etl.pipeline import DataLoader, DataTransformer

logger = logging.getLogger(__name__)


def _rep_key(column: str) -> pl.Expr:
    """``r101`` -> 101."""
    return pl.col(column).str.strip_prefix("r").cast(pl.Int64)


class NormalizedStoreLoader:
    """Full-replace load of the normalized (3NF) store from XML records.

    Tables are dropped and recreated, then filled in foreign-key order:
    territories, reps, countries, customers, products, salestxn. Reference
    entities are keyed 1..N in first-seen order and every name is resolved
    to its id by exact match.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def load(self, reps: pl.DataFrame, transactions: pl.DataFrame) -> dict[str, int]:
        """Rebuilds the normalized store.

        Args:
            reps (pl.DataFrame): Rep records (REP_SCHEMA).
            transactions (pl.DataFrame): Transaction records (TXN_SCHEMA).

        Returns:
            dict[str, int]: Rows written per table.

        Raises:
            SchemaError: If a row breaks a key constraint, e.g. a transaction
                whose repID is not in the reps file or a duplicate txnID.
        """
        rebuild_normalized_schema(self.engine)

        territories = DataTransformer.number_members(reps["territory"], "territoryID", "territoryName")
        rep_rows = (
            reps.join(territories, left_on="territory", right_on="territoryName", how="left")
            .select(
                _rep_key("repID").alias("repID"),
                "firstName",
                "lastName",
                pl.col("territoryID").alias("territory"),
            )
        )

        countries = DataTransformer.number_members(transactions["country"], "countryID", "countryName")

        # A customer keeps the country of its first transaction
        customers = (
            transactions.unique("customer", keep="first", maintain_order=True)
            .join(countries, left_on="country", right_on="countryName", how="left")
            .with_row_index("customerID", offset=1)
            .select(
                pl.col("customerID").cast(pl.Int64),
                pl.col("customer").alias("customerName"),
                pl.col("countryID").alias("country"),
            )
        )

        products = DataTransformer.number_members(transactions["product"], "productID", "productName")

        salestxn = (
            DataTransformer.to_iso_dates(transactions)
            .join(customers.select("customerID", "customerName"), left_on="customer", right_on="customerName", how="left")
            .join(products, left_on="product", right_on="productName", how="left")
            .select(
                "txnID",
                "date",
                "quantity",
                "amount",
                "productID",
                "customerID",
                _rep_key("repID").alias("repID"),
            )
        )

        counts: dict[str, int] = {}
        with open_session(self.engine) as session:
            try:
                for df, model in (
                    (territories, Territory),
                    (rep_rows, Rep),
                    (countries, Country),
                    (customers, Customer),
                    (products, Product),
                    (salestxn, SalesTxn),
                ):
                    table = model.__table__
                    counts[table.name] = DataLoader.load_to_sql(session, df, table, commit=False)
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise SchemaError(f"Normalized load violates a key constraint: {e.orig}") from e

        logger.info(f"Normalized store loaded: {counts}")
        return counts
