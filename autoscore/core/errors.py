"""
Recoverable error conditions raised inside the detection pipeline.

None of these are fatal: the tracker logs them and skips the current
iteration.
"""


class AutoscoreError(Exception):
    """Base class for pipeline errors."""


class NoReferenceFrame(AutoscoreError):
    """Detection was attempted before a reference frame was captured."""


class NoBoardGeometry(AutoscoreError):
    """Detection was attempted without a board geometry estimate."""


class InvalidFrameDimensions(AutoscoreError, ValueError):
    """A frame has the wrong shape, or two frames do not match."""


class ConfigError(AutoscoreError, ValueError):
    """Configuration file or value could not be used."""
