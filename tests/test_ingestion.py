# 1. Standard Library
from pathlib import Path

# 2. Third-Party Libraries
import pytest
from pydantic import ValidationError
from sqlalchemy import Engine
from sqlmodel import Session, text

# 3. Application Layers
from sales_dw.core.config import Settings
from sales_dw.core.exceptions import SchemaError, SourceDataError
from sales_dw.domain.records import RepRecord, TransactionRecord
from sales_dw.etl.pipeline import DataExtractor
from sales_dw.etl.run import run_pipeline
from sales_dw.services.ingestion_service import IngestionService


REPS_XML = """<?xml version="1.0"?>
<reps>
  <rep rID="r101"><firstName>Helmut</firstName><lastName>Schwab</lastName><territory>EMEA</territory></rep>
  <rep rID="r102"><firstName>Lynette</firstName><lastName>McRowe</lastName><territory>East</territory></rep>
</reps>
"""

def _txn(txn_id: str, date: str, cust: str, prod: str, amount: int, country: str, rep: str) -> str:
    return (
        f"<txn><txnID>{txn_id}</txnID><date>{date}</date><cust>{cust}</cust><prod>{prod}</prod>"
        f"<qty>1</qty><amount>{amount}</amount><country>{country}</country><repID>{rep}</repID></txn>"
    )

def _write_txns(path: Path, *txns: str) -> Path:
    path.write_text(f'<?xml version="1.0"?>\n<txns>{"".join(txns)}</txns>\n')
    return path


@pytest.fixture(name="xml_dir")
def xml_dir_fixture(tmp_path: Path) -> Path:
    (tmp_path / "pharmaReps.xml").write_text(REPS_XML)
    _write_txns(
        tmp_path / "pharmaSalesTxn-1.xml",
        _txn("1", "02/15/2020", "Acme", "Zalofen", 100, "USA", "101"),
        _txn("2", "05/10/2020", "Berlin", "Aspirin", 200, "Germany", "102"),
    )
    _write_txns(
        tmp_path / "pharmaSalesTxn-2.xml",
        _txn("1", "01/01/2021", "Acme", "Zalofen", 50, "USA", "101"),
    )
    return tmp_path


# --- 1. Record Validation ---

def test_transaction_record_rejects_bad_date() -> None:
    with pytest.raises(ValidationError):
        TransactionRecord(
            txnID="1_1", date="13/01/2020", customer="Acme", product="Zalofen",
            quantity=1, amount=10, country="USA", repID="101"
        )

def test_rep_record_normalizes_id() -> None:
    rep = RepRecord(repID=" r101 ", firstName="Helmut", lastName="Schwab", territory="EMEA")
    assert rep.repID == "r101"


# --- 2. XML Parsing ---

def test_transaction_ids_are_prefixed_by_file(xml_dir: Path) -> None:
    df = DataExtractor.read_transaction_files(sorted(xml_dir.glob("pharmaSalesTxn*.xml")))
    assert df["txnID"].to_list() == ["1_1", "1_2", "2_1"]
    assert df["amount"].sum() == 350

def test_missing_element_is_a_source_error(tmp_path: Path) -> None:
    bad = _write_txns(tmp_path / "bad.xml", "<txn><txnID>1</txnID><date>02/15/2020</date></txn>")
    with pytest.raises(SourceDataError, match="bad.xml"):
        DataExtractor.read_transactions_xml(bad, 1)

def test_unparseable_xml_is_a_source_error(tmp_path: Path) -> None:
    broken = tmp_path / "pharmaReps.xml"
    broken.write_text("<reps><rep rID='r1'>")
    with pytest.raises(SourceDataError):
        DataExtractor.read_reps_xml(broken)


# --- 3. Normalized Store Load ---

def test_ingestion_loads_every_normalized_table(xml_dir: Path, normalized_engine: Engine) -> None:
    counts = IngestionService(normalized_engine).run(xml_dir, "pharmaReps*.xml", "pharmaSalesTxn*.xml")

    assert counts == {
        "territories": 2, "reps": 2, "countries": 2,
        "customers": 2, "products": 2, "salestxn": 3,
    }
    with Session(normalized_engine) as session:
        rows = session.execute(text(
            "SELECT s.txnID, s.date, p.productName, s.repID FROM salestxn s "
            "JOIN products p ON s.productID = p.productID ORDER BY s.txnID"
        )).all()
    assert [tuple(r) for r in rows] == [
        ("1_1", "2020-02-15", "Zalofen", 101),
        ("1_2", "2020-05-10", "Aspirin", 102),
        ("2_1", "2021-01-01", "Zalofen", 101),
    ]

def test_reingestion_replaces_previous_load(xml_dir: Path, normalized_engine: Engine) -> None:
    service = IngestionService(normalized_engine)
    service.run(xml_dir, "pharmaReps*.xml", "pharmaSalesTxn*.xml")
    counts = service.run(xml_dir, "pharmaReps*.xml", "pharmaSalesTxn*.xml")
    assert counts["salestxn"] == 3

def test_unknown_rep_breaks_referential_integrity(xml_dir: Path, normalized_engine: Engine) -> None:
    _write_txns(
        xml_dir / "pharmaSalesTxn-3.xml",
        _txn("1", "03/03/2021", "Acme", "Zalofen", 10, "USA", "999"),
    )
    with pytest.raises(SchemaError):
        IngestionService(normalized_engine).run(xml_dir, "pharmaReps*.xml", "pharmaSalesTxn*.xml")

def test_missing_folder_is_a_source_error(tmp_path: Path, normalized_engine: Engine) -> None:
    with pytest.raises(SourceDataError):
        IngestionService(normalized_engine).run(tmp_path / "nope", "pharmaReps*.xml", "pharmaSalesTxn*.xml")


# --- 4. Full Run ---

def test_run_pipeline_end_to_end(xml_dir: Path, tmp_path: Path) -> None:
    config = Settings(
        NORMALIZED_DATABASE_URL=f"sqlite:///{tmp_path / 'normalized.db'}",
        WAREHOUSE_DATABASE_URL=f"sqlite:///{tmp_path / 'warehouse.db'}",
        TXN_XML_DIR=str(xml_dir),
    )
    counts = run_pipeline(config)

    assert counts["salestxn"] == 3
    assert counts["date_dim"] == 6  # 2020-Q1, 2020-Q2, 2021-Q1, 2020-ALL, 2021-ALL, ALL-ALL
    assert counts["product_facts"] > 0
    assert counts["rep_facts"] > 0


def test_run_pipeline_missing_folder(tmp_path: Path) -> None:
    config = Settings(
        NORMALIZED_DATABASE_URL=f"sqlite:///{tmp_path / 'normalized.db'}",
        WAREHOUSE_DATABASE_URL=f"sqlite:///{tmp_path / 'warehouse.db'}",
        TXN_XML_DIR=str(tmp_path / "nowhere"),
    )
    with pytest.raises(SourceDataError):
        run_pipeline(config)
