"""Exceptions raised by the ledger.

Expected validation outcomes (unknown account, insufficient funds, ...) are
not exceptions; they travel as ``Left``/failed ``TransferResult`` values.
The classes below cover the conditions that must fail loudly.
"""


class LedgerError(Exception):
    """Base class for ledger errors."""


class MalformedRecordError(LedgerError, ValueError):
    """A stored or submitted record does not have the expected shape."""


class StoreError(LedgerError):
    """The persistence collaborator rejected a read or write."""

    def __init__(self, message: str, table: str = "", row_id: str = ""):
        super().__init__(message)
        self.table = table
        self.row_id = row_id
