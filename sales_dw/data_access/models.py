from typing import Optional

from sqlalchemy import Column, ForeignKey, Integer, String, Table
from sqlmodel import Field, SQLModel

# Surrogate key and name reserved for the roll-up member of every dimension
ALL_KEY = 0
ALL_NAME = "ALL"

# --- Normalized Store (3NF, loaded from XML) ---

class Territory(SQLModel, table=True):
    __tablename__ = "territories"
    territoryID: Optional[int] = Field(default=None, primary_key=True)
    territoryName: str

class Rep(SQLModel, table=True):
    __tablename__ = "reps"
    repID: int = Field(primary_key=True)
    firstName: str
    lastName: str
    territory: int = Field(foreign_key="territories.territoryID")

class Country(SQLModel, table=True):
    __tablename__ = "countries"
    countryID: Optional[int] = Field(default=None, primary_key=True)
    countryName: str

class Customer(SQLModel, table=True):
    __tablename__ = "customers"
    customerID: Optional[int] = Field(default=None, primary_key=True)
    customerName: str
    country: int = Field(foreign_key="countries.countryID")

class Product(SQLModel, table=True):
    __tablename__ = "products"
    productID: Optional[int] = Field(default=None, primary_key=True)
    productName: str

class SalesTxn(SQLModel, table=True):
    __tablename__ = "salestxn"
    txnID: str = Field(primary_key=True)
    date: str  # ISO "YYYY-MM-DD"
    quantity: int
    amount: int
    productID: int = Field(foreign_key="products.productID")
    customerID: int = Field(foreign_key="customers.customerID")
    repID: int = Field(foreign_key="reps.repID")

NORMALIZED_TABLES = [
    Territory.__table__,
    Rep.__table__,
    Country.__table__,
    Customer.__table__,
    Product.__table__,
    SalesTxn.__table__,
]

# --- Star Schema: Dimension Tables ---
# Keys are assigned by the dimension builder, never by the database.

class ProductDim(SQLModel, table=True):
    __tablename__ = "product_dim"
    productID: int = Field(primary_key=True, sa_column_kwargs={"autoincrement": False})
    productName: str

class RegionDim(SQLModel, table=True):
    __tablename__ = "region_dim"
    regionID: int = Field(primary_key=True, sa_column_kwargs={"autoincrement": False})
    regionName: str

class RepDim(SQLModel, table=True):
    __tablename__ = "rep_dim"
    repID: int = Field(primary_key=True, sa_column_kwargs={"autoincrement": False})
    repName: str

class DateDim(SQLModel, table=True):
    __tablename__ = "date_dim"
    timeID: str = Field(primary_key=True, max_length=10)  # e.g. "2020-Q1", "ALL-ALL"
    year: int                                             # 0 for the ALL sentinel
    quarter: str = Field(max_length=10)                   # "Q1".."Q4" or "ALL"

# --- Star Schema: Fact Tables ---
# Fact rows carry no primary key, so they are plain Core tables on the shared metadata.

product_facts = Table(
    "product_facts",
    SQLModel.metadata,
    Column("product_key", Integer, ForeignKey("product_dim.productID")),
    Column("time_key", String(10), ForeignKey("date_dim.timeID")),
    Column("region_key", Integer, ForeignKey("region_dim.regionID")),
    Column("totalSold", Integer),
)

rep_facts = Table(
    "rep_facts",
    SQLModel.metadata,
    Column("rep_key", Integer, ForeignKey("rep_dim.repID")),
    Column("time_key", String(10), ForeignKey("date_dim.timeID")),
    Column("product_key", Integer, ForeignKey("product_dim.productID")),
    Column("totalSold", Integer),
)

STAR_TABLES = [
    ProductDim.__table__,
    RegionDim.__table__,
    RepDim.__table__,
    DateDim.__table__,
    product_facts,
    rep_facts,
]
