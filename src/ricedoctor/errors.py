"""Exception hierarchy for the diagnosis pipeline."""

from __future__ import annotations


class RiceDoctorError(Exception):
    """Base class for every pipeline failure."""


class ModelLoadError(RiceDoctorError):
    """The model artifact is missing, corrupt, or incompatible with the label set.

    Fatal for the process: inference stays unavailable until restart.
    """


class ImageDecodeError(RiceDoctorError):
    """The source image could not be decoded as a raster image."""


class EncodingError(RiceDoctorError):
    """Pixel data did not produce a tensor of the expected size."""


class InferenceError(RiceDoctorError):
    """The classifier could not be executed for this request."""


class EmptyScoreVectorError(RiceDoctorError):
    """The score vector is empty or does not match the label vocabulary."""
