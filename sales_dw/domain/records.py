import re
from datetime import datetime

from pydantic import BaseModel, Field, field_validator


def _normalize_rep_id(v: object) -> str:
    """Accepts ``r101`` or ``101`` and rejects anything without digits."""
    v = str(v).strip()
    if not re.fullmatch(r"r?\d+", v):
        raise ValueError(f"repID '{v}' must look like 'r<digits>'")
    return v


class RepRecord(BaseModel):
    """A sales rep as it appears in the reps XML file.

    Attributes:
        repID (str): Natural key from the ``rID`` attribute (e.g. ``r101``).
        firstName (str): Given name.
        lastName (str): Family name.
        territory (str): Name of the territory the rep covers.
    """
    repID: str = Field(..., min_length=1)
    firstName: str
    lastName: str
    territory: str = Field(..., min_length=1)

    @field_validator('repID', mode='before')
    @classmethod
    def validate_rep_id(cls, v: str) -> str:
        return _normalize_rep_id(v)


class TransactionRecord(BaseModel):
    """A single sales transaction read from a transaction XML file.

    ``txnID`` is already prefixed with the index of its source file so that
    ids are globally unique across files.
    """
    txnID: str = Field(..., min_length=1)
    date: str = Field(..., description="MM/DD/YYYY")
    customer: str
    product: str
    quantity: int
    amount: int
    country: str
    repID: str

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: str) -> str:
        """Rejects anything that is not a real MM/DD/YYYY calendar date."""
        v = v.strip()
        try:
            datetime.strptime(v, "%m/%d/%Y")
        except ValueError:
            raise ValueError(f"date '{v}' is not a valid MM/DD/YYYY date")
        return v

    @field_validator('repID', mode='before')
    @classmethod
    def validate_rep_id(cls, v: str) -> str:
        return _normalize_rep_id(v)

