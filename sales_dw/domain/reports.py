from pydantic import BaseModel, ConfigDict, Field


class BaseReportModel(BaseModel):
    """Base config for all report rows."""
    model_config = ConfigDict(from_attributes=True)

class YearlyTotal(BaseReportModel):
    """Total sold by one dimension member in one year (time key ``{year}-ALL``)."""
    year: int
    totalSold: int

class TopMember(BaseReportModel):
    """One entry of a top-N report.

    Attributes:
        name (str): Natural name of the rep or product.
        totalSold (int): Grand total across all time.
        years (list[YearlyTotal]): Per-year breakdown, oldest first.
    """
    name: str
    totalSold: int
    years: list[YearlyTotal] = Field(default_factory=list)

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "name": "Helmut Schwab",
                "totalSold": 1250000,
                "years": [{"year": 2020, "totalSold": 1250000}]
            }
        }
    )

class QuarterlySales(BaseReportModel):
    """Total sold across all products and regions in one quarter."""
    timeID: str
    year: int
    quarter: str
    totalSold: int
