"""
Pipeline error taxonomy.

Every failure that crosses a component boundary is a PipelineError subclass
with a stable error code so the calling layer can distinguish "re-upload a
clearer photo" from a caller mistake without parsing messages.
"""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """
    Base exception for pipeline errors.

    Provides structured error information with error codes for programmatic handling.
    """

    def __init__(self, message: str, error_code: str = "PIPELINE_ERROR", context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class AcquisitionFailed(PipelineError):
    """Raised when the VIN plate photo cannot be fetched or read."""

    def __init__(self, reason: str, source: Optional[str] = None):
        super().__init__(
            message=f"Image acquisition failed: {reason}",
            error_code="ACQUISITION_FAILED",
            context={"source": source, "reason": reason}
        )
        self.reason = reason
        self.source = source


class PreprocessingFailed(PipelineError):
    """Raised when no preprocessing variant could be produced."""

    def __init__(self, reason: str, failures: Optional[Dict[str, str]] = None):
        super().__init__(
            message=f"Preprocessing failed: {reason}",
            error_code="PREPROCESSING_FAILED",
            context={"reason": reason, "failures": failures or {}}
        )
        self.reason = reason
        self.failures = failures or {}


class RecognitionFailed(PipelineError):
    """Raised when variants were produced but none of them yielded OCR text."""

    def __init__(self, reason: str, failures: Optional[Dict[str, str]] = None):
        super().__init__(
            message=f"Recognition failed: {reason}",
            error_code="RECOGNITION_FAILED",
            context={"reason": reason, "failures": failures or {}}
        )
        self.reason = reason
        self.failures = failures or {}


class OcrUnavailable(PipelineError):
    """Recognition failed for a single variant. Recovered by skipping it."""

    def __init__(self, strategy: str, reason: str):
        super().__init__(
            message=f"OCR unavailable for variant '{strategy}': {reason}",
            error_code="OCR_UNAVAILABLE",
            context={"strategy": strategy, "reason": reason}
        )
        self.strategy = strategy
        self.reason = reason


class InvalidInput(PipelineError):
    """Raised when the caller supplies an unusable expected VIN or source."""

    def __init__(self, reason: str, value: Any = None):
        super().__init__(
            message=f"Invalid input: {reason}",
            error_code="INVALID_INPUT",
            context={"reason": reason, "value": value}
        )
        self.reason = reason


class PipelineCancelled(PipelineError):
    """Raised when the caller cancels a verification in flight."""

    def __init__(self, stage: str = "unknown"):
        super().__init__(
            message=f"Verification cancelled during {stage}",
            error_code="PIPELINE_CANCELLED",
            context={"stage": stage}
        )
        self.stage = stage


class ConfigurationError(PipelineError):
    """Raised when pipeline is misconfigured."""

    def __init__(self, message: str, config_key: Optional[str] = None, expected: Optional[str] = None):
        super().__init__(
            message=f"Configuration error: {message}",
            error_code="CONFIG_ERROR",
            context={"config_key": config_key, "expected": expected}
        )
        self.config_key = config_key
        self.expected = expected
