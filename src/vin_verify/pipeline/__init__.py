"""
VIN verification pipeline: variant outcomes, decision engine, orchestration
and the persistence seam.
"""

from .results import Ok, Err, VariantOutcome
from .decision import (
    Recommendation,
    ConfidenceTier,
    DecisionPolicy,
    DecisionEngine,
    VerificationVerdict,
    calculate_similarity,
)
from .persistence import (
    VehicleRecord,
    VerdictRecorder,
    VerificationStatus,
    verification_status,
    format_status_notes,
)
from .vin_pipeline import VINVerificationPipeline, normalize_expected_vin

__all__ = [
    # Outcomes
    "Ok",
    "Err",
    "VariantOutcome",
    # Decision
    "Recommendation",
    "ConfidenceTier",
    "DecisionPolicy",
    "DecisionEngine",
    "VerificationVerdict",
    "calculate_similarity",
    # Persistence
    "VehicleRecord",
    "VerdictRecorder",
    "VerificationStatus",
    "verification_status",
    "format_status_notes",
    # Pipeline
    "VINVerificationPipeline",
    "normalize_expected_vin",
]
