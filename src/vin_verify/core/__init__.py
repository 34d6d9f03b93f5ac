"""
VIN Verify Core Module
======================

Core VIN utilities, candidate extraction and the error taxonomy.
Pure functions only: nothing here touches the filesystem or the network.
"""

from .vin_utils import (
    # Constants
    VINConstants,
    VIN_LENGTH,
    VIN_VALID_CHARS,
    VIN_INVALID_CHARS,
    # Validation
    VINValidationResult,
    validate_vin,
    validate_vin_format,
    is_valid_vin,
    # Checksum
    calculate_check_digit,
    validate_checksum,
    # Diagnostics
    has_valid_manufacturer_code,
    contains_label_words,
)
from .extractor import (
    VINCandidate,
    clean_text,
    strip_label_text,
    enumerate_candidates,
    extract_from_text,
    extract_from_label,
    smart_extract,
)
from .errors import (
    PipelineError,
    AcquisitionFailed,
    PreprocessingFailed,
    RecognitionFailed,
    OcrUnavailable,
    InvalidInput,
    PipelineCancelled,
    ConfigurationError,
)

__all__ = [
    # Constants
    "VINConstants",
    "VIN_LENGTH",
    "VIN_VALID_CHARS",
    "VIN_INVALID_CHARS",
    # Validation
    "VINValidationResult",
    "validate_vin",
    "validate_vin_format",
    "is_valid_vin",
    # Checksum
    "calculate_check_digit",
    "validate_checksum",
    # Diagnostics
    "has_valid_manufacturer_code",
    "contains_label_words",
    # Extraction
    "VINCandidate",
    "clean_text",
    "strip_label_text",
    "enumerate_candidates",
    "extract_from_text",
    "extract_from_label",
    "smart_extract",
    # Errors
    "PipelineError",
    "AcquisitionFailed",
    "PreprocessingFailed",
    "RecognitionFailed",
    "OcrUnavailable",
    "InvalidInput",
    "PipelineCancelled",
    "ConfigurationError",
]
