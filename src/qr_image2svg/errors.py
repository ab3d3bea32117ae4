"""
Exception types raised by the conversion pipeline.

"Marker not found" and "unsupported color model" are ordinary outcomes
inside the core (a MarkerEstimate without steps, a sentinel score); only
the orchestrator turns the former into MarkerNotFoundError when it has
no other way to continue.
"""

from typing import Optional


class QRImageError(Exception):
    """Base class for all conversion failures."""


class UnreadableImageError(QRImageError):
    """The pixel source could not open or decode the image."""


class RescaleFailedError(QRImageError):
    """The pixel source failed to resize the working image."""


class CropFailedError(QRImageError):
    """The pixel source failed to crop the working image."""


class UnsupportedFormatError(QRImageError):
    """The requested output format cannot be written."""


class PixelQueryError(QRImageError):
    """A batched pixel query lost its correlation with the requested points."""


class MarkerNotFoundError(QRImageError):
    """Automatic step detection found no usable finder pattern."""

    def __init__(self, estimate, message: Optional[str] = None):
        self.estimate = estimate
        if message is None:
            message = (
                f"Could not estimate tiles per axis ({estimate.reason}); "
                "supply steps explicitly"
            )
        super().__init__(message)
