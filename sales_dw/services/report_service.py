import logging

import polars as pl
from fastapi import HTTPException, status
from sqlmodel import Session, col, select

from sales_dw.data_access.database import read_frame
from sales_dw.data_access.models import (
    ALL_KEY,
    ALL_NAME,
    DateDim,
    ProductDim,
    RepDim,
    product_facts,
    rep_facts,
)
from sales_dw.domain.reports import QuarterlySales, TopMember, YearlyTotal

logger = logging.getLogger(__name__)

# member -> (fact table, member key, other member key held at ALL, dimension, dim key, dim name)
RANKABLE_MEMBERS = {
    "rep": (rep_facts, "rep_key", "product_key", RepDim, "repID", "repName"),
    "product": (product_facts, "product_key", "region_key", ProductDim, "productID", "productName"),
}


class ReportService:
    """Read contracts over the star schema.

    Every query is a constant-shape lookup: the grain is selected by which keys
    are held at the ALL sentinel, never by GROUP BY.
    """

    def __init__(self, session: Session) -> None:
        """Initializes the service with a session on the star schema store."""
        self.session = session

    def top_n(self, member: str, n: int) -> list[TopMember]:
        """The N members with the highest grand total, each with its yearly totals.

        Args:
            member (str): ``"rep"`` or ``"product"``.
            n (int): How many members to return; must be positive.

        Returns:
            list[TopMember]: Highest total first; ties ordered by name.

        Raises:
            HTTPException: 400 if ``n`` is not positive or ``member`` is unknown.
        """
        if member not in RANKABLE_MEMBERS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot rank by '{member}'. Choose one of {sorted(RANKABLE_MEMBERS)}."
            )
        if n < 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="n must be a positive integer."
            )

        fact, key, other_key, dim, dim_key, dim_name = RANKABLE_MEMBERS[member]
        member_key = fact.c[key]
        other_member_key = fact.c[other_key]
        dim_id = col(getattr(dim, dim_key))
        dim_label = col(getattr(dim, dim_name))

        # 1. Rank on the grand-total cells (all time, other member = ALL)
        top_statement = (
            select(dim_id, dim_label, fact.c.totalSold)
            .select_from(fact)
            .join(dim, member_key == dim_id)
            .where(
                fact.c.time_key == "ALL-ALL",
                other_member_key == ALL_KEY,
                member_key != ALL_KEY,
            )
            .order_by(fact.c.totalSold.desc(), dim_label)
            .limit(n)
        )
        top = read_frame(
            self.session,
            top_statement,
            {"member_key": pl.Int64, "name": pl.String, "totalSold": pl.Int64},
        )
        if top.is_empty():
            return []

        # 2. Per-year breakdown for the selected members
        yearly_statement = (
            select(member_key, DateDim.year, fact.c.totalSold)
            .select_from(fact)
            .join(DateDim, fact.c.time_key == col(DateDim.timeID))
            .where(
                col(DateDim.quarter) == ALL_NAME,
                col(DateDim.year) != ALL_KEY,
                other_member_key == ALL_KEY,
                member_key.in_(top["member_key"].to_list()),
            )
            .order_by(col(DateDim.year))
        )
        yearly = read_frame(
            self.session,
            yearly_statement,
            {"member_key": pl.Int64, "year": pl.Int64, "totalSold": pl.Int64},
        )

        results = []
        for row in top.iter_rows(named=True):
            years = yearly.filter(pl.col("member_key") == row["member_key"])
            results.append(
                TopMember(
                    name=row["name"],
                    totalSold=row["totalSold"],
                    years=[YearlyTotal.model_validate(y) for y in years.select("year", "totalSold").to_dicts()],
                )
            )
        logger.info(f"Top {n} {member}s: {[r.name for r in results]}")
        return results

    def top_reps(self, n: int) -> list[TopMember]:
        return self.top_n("rep", n)

    def top_products(self, n: int) -> list[TopMember]:
        return self.top_n("product", n)

    def quarterly_sales(self) -> list[QuarterlySales]:
        """Total sold per real quarter, all products and regions, in time order."""
        statement = (
            select(DateDim.timeID, DateDim.year, DateDim.quarter, product_facts.c.totalSold)
            .select_from(product_facts)
            .join(DateDim, product_facts.c.time_key == col(DateDim.timeID))
            .where(
                product_facts.c.product_key == ALL_KEY,
                product_facts.c.region_key == ALL_KEY,
                col(DateDim.year) != ALL_KEY,
                col(DateDim.quarter) != ALL_NAME,
            )
            .order_by(col(DateDim.timeID))
        )
        rows = read_frame(
            self.session,
            statement,
            {"timeID": pl.String, "year": pl.Int64, "quarter": pl.String, "totalSold": pl.Int64},
        )
        return [QuarterlySales.model_validate(r) for r in rows.to_dicts()]
