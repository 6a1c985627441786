"""Exception types raised by ndmatch."""

from typing import Optional


class NdMatchError(Exception):
    """Base class for all ndmatch errors."""


class ConfigError(NdMatchError, ValueError):
    """An invalid matching configuration value."""


class ShapeMismatchError(NdMatchError, ValueError):
    """Source, template and destination shapes are incompatible.

    ``axis`` is the offending axis (``None`` when the whole shape is at
    fault), ``expected`` and ``actual`` the bound and the observed value.
    """

    def __init__(
        self,
        message: str,
        axis: Optional[int] = None,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
    ):
        super().__init__(message)
        self.axis = axis
        self.expected = expected
        self.actual = actual


class RankMismatchError(ShapeMismatchError):
    """Arrays have a different number of axes, or an unsupported rank."""


class TemplateTooLargeError(ShapeMismatchError):
    """A template axis is empty or longer than the matching source axis."""


class DestinationShapeError(ShapeMismatchError):
    """A preallocated destination does not have the result shape."""
