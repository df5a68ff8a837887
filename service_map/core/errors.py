"""Error taxonomy shared by the loader, cache and map layers."""


class SourceFetchError(RuntimeError):
    """Raised when a location source cannot be fetched or read."""


class ParseError(ValueError):
    """Raised when CSV, GeoJSON or cached text is malformed."""


class CoordinateResolutionMiss(LookupError):
    """Raised when a clicked feature does not match any loaded record."""
