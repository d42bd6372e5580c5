"""
Exceptions raised at the load and dispatch boundaries of the core.

Nothing on the interaction path raises these to the host: engine and
callback failures are swallowed by ``interfaces.safe_call``.
"""


class MapCoreError(Exception):
    """Base class for map core errors."""


class UnknownCommandError(MapCoreError):
    """A host command could not be matched to a known command type."""


class StatDataError(MapCoreError):
    """A statistics frame is missing required columns or cannot be read."""


class GeometryDataError(MapCoreError):
    """A boundary GeoJSON file is missing or malformed."""
