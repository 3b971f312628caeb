import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, TypeVar

import polars as pl
from pydantic import BaseModel, ValidationError
from sqlalchemy import Table
from sqlmodel import Session, col, select

from sales_dw.core.exceptions import SourceDataError
from sales_dw.data_access.database import read_frame, write_frame
from sales_dw.data_access.models import ALL_KEY, ALL_NAME, Product, Rep, SalesTxn, Territory
from sales_dw.domain.records import RepRecord, TransactionRecord

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

REP_SCHEMA = {
    "repID": pl.String,
    "firstName": pl.String,
    "lastName": pl.String,
    "territory": pl.String,
}

TXN_SCHEMA = {
    "txnID": pl.String,
    "date": pl.String,
    "customer": pl.String,
    "product": pl.String,
    "quantity": pl.Int64,
    "amount": pl.Int64,
    "country": pl.String,
    "repID": pl.String,
}

# Calendar quarters; there is no fiscal-year offset in the source data.
QUARTER_BY_MONTH = {
    1: "Q1", 2: "Q1", 3: "Q1",
    4: "Q2", 5: "Q2", 6: "Q2",
    7: "Q3", 8: "Q3", 9: "Q3",
    10: "Q4", 11: "Q4", 12: "Q4",
}


def quarter_for_month(month: int) -> str:
    """Maps a calendar month to its quarter label.

    Raises:
        SourceDataError: If ``month`` is outside 1-12.
    """
    try:
        return QUARTER_BY_MONTH[month]
    except KeyError:
        raise SourceDataError(f"Month {month!r} is outside 1-12; cannot derive a quarter") from None


class DataExtractor:
    """Handles data ingestion from the XML sources and the normalized store.

    XML files become validated polars frames (REP_SCHEMA / TXN_SCHEMA);
    the normalized store is read back at transaction grain for the warehouse.
    """

    @staticmethod
    def _parse_xml(file_path: Path) -> ET.Element:
        try:
            return ET.parse(file_path).getroot()
        except (ET.ParseError, OSError) as e:
            raise SourceDataError(f"Cannot parse XML file {file_path}: {e}") from e

    @staticmethod
    def _validate(model: type[ModelT], raw: dict[str, Any], file_path: Path, position: int) -> ModelT:
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise SourceDataError(
                f"{file_path.name}: record #{position} is not a valid {model.__name__}: {e}"
            ) from e

    @staticmethod
    def read_reps_xml(file_path: Path) -> pl.DataFrame:
        """Reads the sales reps file into a flat frame of RepRecord rows.

        Args:
            file_path (Path): Path to a ``pharmaReps*.xml`` file.

        Returns:
            pl.DataFrame: One row per rep with columns per REP_SCHEMA.
        """
        root = DataExtractor._parse_xml(file_path)
        records = [
            DataExtractor._validate(
                RepRecord,
                {
                    "repID": node.get("rID"),
                    "firstName": node.findtext("firstName"),
                    "lastName": node.findtext("lastName"),
                    "territory": node.findtext("territory"),
                },
                file_path,
                position,
            )
            for position, node in enumerate(root, start=1)
        ]
        logger.info(f"Read {len(records)} reps from {file_path.name}")
        return pl.DataFrame([r.model_dump() for r in records], schema=REP_SCHEMA)

    @staticmethod
    def read_transactions_xml(file_path: Path, file_index: int) -> pl.DataFrame:
        """Reads one transaction file, prefixing txnIDs with the file index.

        Args:
            file_path (Path): Path to a ``pharmaSalesTxn*.xml`` file.
            file_index (int): 1-based position of the file; keeps txnIDs
                unique across files (``"{file_index}_{txnID}"``).

        Returns:
            pl.DataFrame: One row per transaction with columns per TXN_SCHEMA.
        """
        root = DataExtractor._parse_xml(file_path)
        records = []
        for position, node in enumerate(root, start=1):
            txn_id = node.findtext("txnID")
            raw = {
                "txnID": f"{file_index}_{txn_id}" if txn_id else None,
                "date": node.findtext("date"),
                "customer": node.findtext("cust"),
                "product": node.findtext("prod"),
                "quantity": node.findtext("qty"),
                "amount": node.findtext("amount"),
                "country": node.findtext("country"),
                "repID": node.findtext("repID"),
            }
            records.append(DataExtractor._validate(TransactionRecord, raw, file_path, position))

        logger.info(f"Read {len(records)} transactions from {file_path.name}")
        return pl.DataFrame([r.model_dump() for r in records], schema=TXN_SCHEMA)

    @staticmethod
    def read_transaction_files(file_paths: list[Path]) -> pl.DataFrame:
        """Reads every transaction file in order and stacks the results."""
        frames = [
            DataExtractor.read_transactions_xml(path, index)
            for index, path in enumerate(file_paths, start=1)
        ]
        if not frames:
            return pl.DataFrame(schema=TXN_SCHEMA)
        return pl.concat(frames)

    @staticmethod
    def extract_transactions(session: Session) -> pl.DataFrame:
        """Reads the normalized store at transaction grain.

        Returns:
            pl.DataFrame: Columns ``txnID, date, amount, product, region, rep``
            where ``rep`` is the rep's full name.
        """
        statement = (
            select(
                SalesTxn.txnID,
                SalesTxn.date,
                SalesTxn.amount,
                Product.productName,
                Territory.territoryName,
                Rep.firstName,
                Rep.lastName,
            )
            .select_from(SalesTxn)
            .join(Product, col(SalesTxn.productID) == col(Product.productID))
            .join(Rep, col(SalesTxn.repID) == col(Rep.repID))
            .join(Territory, col(Rep.territory) == col(Territory.territoryID))
            .order_by(col(SalesTxn.txnID))
        )
        df = read_frame(
            session,
            statement,
            {
                "txnID": pl.String,
                "date": pl.String,
                "amount": pl.Int64,
                "product": pl.String,
                "region": pl.String,
                "firstName": pl.String,
                "lastName": pl.String,
            },
        )
        return df.with_columns(
            DataTransformer.full_name("firstName", "lastName").alias("rep")
        ).drop("firstName", "lastName")


class DataTransformer:
    """Implements the column-level transformations shared by both stores."""

    @staticmethod
    def full_name(first: str, last: str) -> pl.Expr:
        """Rep display name used as the rep dimension's natural key."""
        return pl.concat_str([pl.col(first), pl.col(last)], separator=" ")

    @staticmethod
    def to_iso_dates(df: pl.DataFrame, column: str = "date") -> pl.DataFrame:
        """Converts MM/DD/YYYY source dates to the YYYY-MM-DD text stored in salestxn."""
        return df.with_columns(
            pl.col(column).str.to_date("%m/%d/%Y").dt.strftime("%Y-%m-%d").alias(column)
        )

    @staticmethod
    def number_members(
        names: pl.Series,
        key_column: str,
        name_column: str,
        start: int = 1,
    ) -> pl.DataFrame:
        """Distinct names in first-seen order, keyed ``start..start+N-1``."""
        members = names.drop_nulls().unique(maintain_order=True)
        return pl.DataFrame({
            key_column: pl.int_range(start, start + members.len(), eager=True, dtype=pl.Int64),
            name_column: members,
        })

    @staticmethod
    def derive_periods(df: pl.DataFrame, column: str = "date") -> pl.DataFrame:
        """Adds ``year`` (string) and ``quarter`` (``Q1``..``Q4``) from ISO dates.

        Args:
            df (pl.DataFrame): Frame with a ``YYYY-MM-DD`` text column.
            column (str): Name of that column.

        Returns:
            pl.DataFrame: The input plus ``year`` and ``quarter``.

        Raises:
            SourceDataError: If a date does not parse or its month is not 1-12.
        """
        parts = df.with_columns(
            pl.col(column).str.extract(r"^(\d{4})-\d{1,2}-\d{1,2}$", 1).alias("year"),
            pl.col(column).str.extract(r"^\d{4}-(\d{1,2})-\d{1,2}$", 1).cast(pl.Int64).alias("_month"),
        )

        malformed = parts.filter(pl.col("year").is_null() | pl.col("_month").is_null())
        if malformed.height:
            sample = malformed[column].head(5).to_list()
            raise SourceDataError(f"{malformed.height} transaction date(s) are malformed, e.g. {sample}")

        out_of_range = parts.filter(~pl.col("_month").is_in(list(QUARTER_BY_MONTH)))
        if out_of_range.height:
            quarter_for_month(out_of_range["_month"][0])

        return parts.with_columns(
            pl.col("_month").replace_strict(QUARTER_BY_MONTH, return_dtype=pl.String).alias("quarter")
        ).drop("_month")


class DateDimensionGenerator:
    """Builds the quarter/year/all roll-up lattice of the date dimension."""

    @staticmethod
    def time_key(year: pl.Expr, quarter: pl.Expr) -> pl.Expr:
        """``{year}-{quarter}`` with ``ALL`` spelled out for either sentinel."""
        return pl.concat_str([year.cast(pl.String), quarter], separator="-")

    @staticmethod
    def generate(periods: pl.DataFrame) -> pl.DataFrame:
        """Generates date_dim rows from the observed (year, quarter) pairs.

        The result holds every observed (year, quarter), one (year, ALL) per
        observed year and a single (ALL, ALL). The integer ``year`` column
        carries 0 for the ALL sentinel; ``timeID`` spells it ``ALL``.

        Args:
            periods (pl.DataFrame): Frame with string ``year`` and ``quarter``.

        Returns:
            pl.DataFrame: Columns ``timeID, year, quarter``.
        """
        observed = periods.select("year", "quarter").unique().sort("year", "quarter")
        yearly = (
            observed.select("year").unique().sort("year")
            .with_columns(pl.lit(ALL_NAME).alias("quarter"))
        )
        grand = pl.DataFrame({"year": [ALL_NAME], "quarter": [ALL_NAME]})

        lattice = pl.concat([observed, yearly, grand])
        return lattice.select(
            DateDimensionGenerator.time_key(pl.col("year"), pl.col("quarter")).alias("timeID"),
            pl.when(pl.col("year") == ALL_NAME)
            .then(pl.lit(ALL_KEY))
            .otherwise(pl.col("year").cast(pl.Int64, strict=False))
            .cast(pl.Int64)
            .alias("year"),
            pl.col("quarter"),
        )


class DataLoader:
    """Handles the 'Load' phase of the ETL process."""

    @staticmethod
    def load_to_sql(
        session: Session,
        df: pl.DataFrame,
        table: Table,
        commit: bool = True,
    ) -> int:
        """Appends a polars frame to a table and optionally commits.

        Args:
            session (Session): Session on the destination store.
            df (pl.DataFrame): Rows to append; columns must match ``table``.
            table (Table): The destination table.
            commit (bool): Commit right away so later steps can read the rows.

        Returns:
            int: Number of rows written.
        """
        count = write_frame(session, df, table)
        if commit:
            session.commit()
        logger.info(f"Loaded {count} rows into {table.name}")
        return count
