"""
Persistence seam.

The pipeline does not own storage. A vehicle record comes in, a verdict goes
out through VerdictRecorder.record_verdict(); the application decides where
it lands.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

from .decision import Recommendation, VerificationVerdict


class VerificationStatus(str, Enum):
    """Stored verification status of a vehicle."""
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"


@dataclass(frozen=True)
class VehicleRecord:
    """What the pipeline needs to know about a vehicle."""
    vehicle_id: Union[int, str]
    image_source: Union[str, Path]
    expected_vin: str


class VerdictRecorder(ABC):
    """Records a verdict against a vehicle. Implemented by the host application."""

    @abstractmethod
    def record_verdict(self, vehicle_id: Union[int, str], verdict: VerificationVerdict) -> None:
        ...


def verification_status(recommendation: Union[Recommendation, str]) -> VerificationStatus:
    """Map a recommendation to the stored status."""
    recommendation = Recommendation(recommendation)
    if recommendation == Recommendation.AUTO_APPROVE:
        return VerificationStatus.APPROVED
    if recommendation == Recommendation.REJECT:
        return VerificationStatus.REJECTED
    return VerificationStatus.PENDING


def format_status_notes(verdict: VerificationVerdict) -> str:
    """
    Notes in the form stored alongside the status.

    Examples:
        "Auto-approved by OCR. VIN matched: 2HGFA1F54AH570372. Confidence: high"
        "Auto-rejected. Too many differences (41% match). ..."
        "Flagged for manual review. No VIN could be read from the image ..."
    """
    status = verification_status(verdict.recommendation)
    if status == VerificationStatus.APPROVED:
        return (
            f"Auto-approved by OCR. VIN matched: {verdict.extracted_vin}. "
            f"Confidence: {verdict.confidence.value}"
        )
    if status == VerificationStatus.REJECTED:
        return f"Auto-rejected. {verdict.notes}"
    return f"Flagged for manual review. {verdict.notes}"
