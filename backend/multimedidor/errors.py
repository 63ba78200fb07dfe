# backend/multimedidor/errors.py


class StoreError(Exception):
    """Base class for reading store failures."""


class PersistenceError(StoreError):
    """
    Writing to the backing storage failed.
    :param reading: the reading that was accepted in memory anyway (None for clear)
    """

    def __init__(self, message: str, reading=None):
        super().__init__(message)
        self.reading = reading


class ExportPeriodError(ValueError):
    """Bad or incomplete date range for a CSV period export."""
