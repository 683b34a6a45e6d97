"""
Exceptions raised by the tide calculator and its WorldTides client.
"""
from typing import Optional


class TideError(Exception):
    """Base exception for tide calculation errors."""
    pass


class UnknownConstituent(TideError, ValueError):
    """Raised when a constituent name has no known angular speed."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tidal constituent: {name!r}")
        self.name = name


class InvalidConstituents(TideError, ValueError):
    """Raised when constituents produce non-finite heights (NaN or infinite amplitudes)."""
    pass


class WorldTidesError(TideError):
    """Raised when the WorldTides API cannot deliver usable constituents."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
