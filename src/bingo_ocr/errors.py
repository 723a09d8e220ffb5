"""
Exceptions raised by the ticket pipeline.

Only environment-level failures are raised. Geometric ambiguities and
unreadable cells are resolved inside the pipeline.
"""


class TicketScanError(Exception):
    """Base class for all pipeline failures."""
    pass


class DecodeFailure(TicketScanError):
    """Raised when the source raster cannot be read or decoded."""
    pass


class RenderSurfaceFailure(TicketScanError):
    """Raised when an internal drawing surface cannot be created."""
    pass


class RecognitionTimeout(TicketScanError):
    """Raised when the text-recognition engine does not answer in time."""
    pass
