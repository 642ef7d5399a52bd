"""Exceptions raised by the fusion pipeline."""


class FusionError(Exception):
    """Base class for fusion errors."""
    pass


class FusionConfigError(FusionError, ValueError):
    """Raised when fusion options or option files are invalid."""
    pass
