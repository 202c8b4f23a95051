# splitroute/errors.py


class SplitRouteError(Exception):
    """Base class for every error raised by splitroute."""


class InvalidInputError(SplitRouteError, ValueError):
    """An input-contract violation. Fatal to the step that detected it."""


class InvalidAddressError(InvalidInputError):
    pass


class InvalidPrefixLengthError(InvalidInputError):
    pass


class InvalidPortError(InvalidInputError):
    pass


class DataSourceError(SplitRouteError):
    """Failure in one of the I/O collaborators (dumps, DNS, socket table)."""


class HarParseError(DataSourceError):
    pass


class ResolutionError(DataSourceError):
    pass


class SnapshotError(DataSourceError):
    pass
