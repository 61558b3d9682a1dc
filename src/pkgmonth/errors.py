"""Exceptions raised by the reconciliation engine."""


class PkgmonthError(Exception):
    """Base class for pkgmonth errors."""


class StoreUnavailable(PkgmonthError):
    """The persisted store is unreachable or not configured."""


class ConfigInvalid(PkgmonthError):
    """A configuration value could not be used as given."""


class NetworkError(PkgmonthError):
    """A call to the external statistics API failed."""


class NoDataForRange(PkgmonthError):
    """The statistics API has no data for the requested packages and range."""


class PersistenceError(PkgmonthError):
    """A bulk write or delete against the store failed.

    ``ids`` lists the record ids that were not written, when known.
    """

    def __init__(self, message: str, ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.ids = ids or []
