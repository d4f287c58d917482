"""GeoPhoto: acquisition of geotagged photos in web-displayable formats."""

__version__ = "0.1.0"

from geophoto.types import (
    AcceptedPhoto,
    AcquisitionOutcome,
    CandidatePhoto,
    ErrorCategory,
    ErrorRecord,
    FormatVerdict,
)

__all__ = [
    "AcceptedPhoto",
    "AcquisitionOutcome",
    "CandidatePhoto",
    "ErrorCategory",
    "ErrorRecord",
    "FormatVerdict",
    "__version__",
]
