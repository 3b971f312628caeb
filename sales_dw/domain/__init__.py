# sales_dw/domain/__init__.py

# 1. Source Records (XML contract)
from .records import RepRecord, TransactionRecord

# 2. Report Rows
from .reports import QuarterlySales, TopMember, YearlyTotal


__all__ = [
    "QuarterlySales",
    "RepRecord",
    "TopMember",
    "TransactionRecord",
    "YearlyTotal"
]
