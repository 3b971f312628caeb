import logging
from pathlib import Path

from sqlalchemy import Engine

from sales_dw.core.exceptions import SourceDataError
from sales_dw.etl.normalized_loader import NormalizedStoreLoader
from sales_dw.etl.pipeline import DataExtractor

logger = logging.getLogger(__name__)

class IngestionService:
    """Loads the normalized store from the XML drop folder.

    The folder holds one reps file and any number of transaction files;
    transaction files are read in sorted name order so the txnID prefixes
    are stable between runs.
    """

    def __init__(self, engine: Engine) -> None:
        """Initializes the service with the normalized store engine.

        Args:
            engine (Engine): Engine on the normalized store.
        """
        self.engine = engine

    def run(self, xml_dir: Path, reps_pattern: str, txn_pattern: str) -> dict[str, int]:
        """Parses every XML file and fully replaces the normalized store.

        Args:
            xml_dir (Path): Folder holding the XML files.
            reps_pattern (str): Glob matching the reps file.
            txn_pattern (str): Glob matching the transaction files.

        Returns:
            dict[str, int]: Rows written per normalized table.

        Raises:
            SourceDataError: If the folder or the reps file is missing, or a record is malformed.
        """
        if not xml_dir.is_dir():
            raise SourceDataError(f"XML folder not found: {xml_dir}")

        rep_files = sorted(xml_dir.glob(reps_pattern))
        if not rep_files:
            raise SourceDataError(f"No reps file matching '{reps_pattern}' in {xml_dir}")
        if len(rep_files) > 1:
            logger.warning(f"Several reps files match; using {rep_files[0].name}")

        txn_files = sorted(xml_dir.glob(txn_pattern))
        logger.info(f"📥 Ingesting {rep_files[0].name} and {len(txn_files)} transaction file(s)")

        reps = DataExtractor.read_reps_xml(rep_files[0])
        transactions = DataExtractor.read_transaction_files(txn_files)
        return NormalizedStoreLoader(self.engine).load(reps, transactions)
