"""
VIN Verify
==========

Optical verification of Vehicle Identification Numbers: given a photo of a
VIN plate and the VIN an operator typed in, decide whether the photo supports
it and what should happen next (auto-approve, manual review, reject).

Package Structure:
    vin_verify/
    ├── core/           # VIN checksum, candidate extraction, error taxonomy
    ├── acquisition/    # Local/remote image resolution, run workspace
    ├── preprocessing/  # Five OpenCV image variants
    ├── providers/      # OCR backends (Tesseract, PaddleOCR)
    ├── pipeline/       # Orchestration, decision engine, persistence seam
    ├── config.py       # Environment-driven settings
    └── cli.py          # vin-verify command

Quick Start:
    from vin_verify import VINVerificationPipeline

    pipeline = VINVerificationPipeline()
    verdict = pipeline.verify("plate.jpg", "2HGFA1F54AH570372")
    print(verdict.recommendation, verdict.notes)

    # Pure helpers
    from vin_verify import extract_from_text, is_valid_vin
    candidate = extract_from_text("V.I.N. 2HGFA1F54AH570372")
    print(is_valid_vin(candidate.vin))
"""

__version__ = "1.0.0"

# Core exports (lightweight, no OpenCV or OCR engine)
from .core import (
    VINConstants,
    VIN_LENGTH,
    VINValidationResult,
    VINCandidate,
    validate_vin,
    validate_vin_format,
    is_valid_vin,
    calculate_check_digit,
    validate_checksum,
    extract_from_text,
    extract_from_label,
    smart_extract,
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
    "__version__",
    # Core
    "VINConstants",
    "VIN_LENGTH",
    "VINValidationResult",
    "VINCandidate",
    "validate_vin",
    "validate_vin_format",
    "is_valid_vin",
    "calculate_check_digit",
    "validate_checksum",
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

_LAZY_EXPORTS = {
    "VINVerificationPipeline": ".pipeline",
    "VerificationVerdict": ".pipeline",
    "DecisionEngine": ".pipeline",
    "DecisionPolicy": ".pipeline",
    "VehicleRecord": ".pipeline",
    "VerdictRecorder": ".pipeline",
}


# Lazy imports for the pipeline (OpenCV, pytesseract, requests)
def __getattr__(name: str):
    """Lazy import for pipeline classes."""
    if name in _LAZY_EXPORTS:
        import importlib
        module = importlib.import_module(_LAZY_EXPORTS[name], __name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
