"""Error taxonomy for the sales warehouse.

Every error is fatal for the run: nothing here is caught and retried inside
the pipeline. The entry points translate them into an exit code or an HTTP
response.
"""
from collections.abc import Iterable


class SalesWarehouseError(Exception):
    """Base class for all pipeline failures."""


class SchemaError(SalesWarehouseError):
    """A table could not be dropped, created or constrained."""


class SourceDataError(SalesWarehouseError):
    """A source record is malformed (bad date, missing field, bad quarter)."""


class ConnectivityError(SalesWarehouseError):
    """The backing store could not be reached."""


class IntegrityCheckError(SalesWarehouseError):
    """Post-load consistency check between fact tables failed."""


class ResolutionError(SalesWarehouseError):
    """A natural key produced by an aggregate view has no dimension row.

    Attributes:
        view (str): Name of the grain view being loaded.
        dimension (str): Dimension table the lookup ran against.
        keys (list[str]): The natural keys that did not resolve.
    """

    def __init__(self, view: str, dimension: str, keys: Iterable[object]) -> None:
        self.view = view
        self.dimension = dimension
        self.keys = sorted(str(k) for k in keys)
        super().__init__(
            f"View '{view}': {len(self.keys)} key(s) missing from {dimension}: "
            f"{', '.join(self.keys)}"
        )
