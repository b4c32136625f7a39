# Overview: Error taxonomy shared by the ledger, close-of-business and the transaction sources.


class LedgerError(Exception):
    """Base class for ledger and close-of-business failures."""
    pass


class DataUnavailable(LedgerError):
    """A transaction source could not be read; no partial totals are returned."""
    pass


class AlreadyClosed(LedgerError):
    """The business date already has a COB record."""
    pass


class InvalidDate(LedgerError):
    """The date cannot be closed (in the future, or before the latest closure)."""
    pass


class DateClosed(LedgerError):
    """A write targets a business date that is already closed."""
    pass
