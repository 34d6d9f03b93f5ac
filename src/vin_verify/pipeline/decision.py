"""
Verification Decision Engine
============================

Compares the extracted VIN with the VIN the operator entered and turns the
comparison into an actionable recommendation.

This is the only component that sees the expected VIN.

Two policies are provided:

- lenient (default): any extracted VIN with >= 70% positional similarity is
  auto-approved, checksum or not. Most single-character misses are OCR
  confusions (8/B, 5/S) on otherwise correct plates.
- strict: auto-approve only at >= 90% with a checksum-valid extraction;
  70-89% goes to manual review.

Usage:
    engine = DecisionEngine(DecisionPolicy.strict())
    verdict = engine.decide("2HGFA1F54AH570378", "2HGFA1F54AH570372", is_valid=False)
    print(verdict.recommendation)   # manual_review
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.errors import ConfigurationError
from ..core.vin_utils import VIN_LENGTH

logger = logging.getLogger(__name__)


class Recommendation(str, Enum):
    """What the calling layer should do with the vehicle."""
    AUTO_APPROVE = "auto_approve"
    MANUAL_REVIEW = "manual_review"
    REJECT = "reject"


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def calculate_similarity(a: Optional[str], b: Optional[str]) -> int:
    """
    Positional similarity of two VINs as an integer percentage.

    Counts positions where both strings hold the same character, divided by
    17. Returns 0 when either string is missing or not exactly 17 long.

    Examples:
        >>> calculate_similarity("2HGFA1F54AH570372", "2HGFA1F54AH570378")
        94
    """
    if not a or not b or len(a) != VIN_LENGTH or len(b) != VIN_LENGTH:
        return 0
    matches = sum(1 for x, y in zip(a, b) if x == y)
    return int(round(matches / VIN_LENGTH * 100))


def differing_characters(similarity: int) -> int:
    """Number of differing characters implied by a similarity percentage."""
    return VIN_LENGTH - int(round(similarity / 100 * VIN_LENGTH))


# =============================================================================
# POLICY
# =============================================================================

@dataclass
class DecisionPolicy:
    """
    Decision thresholds (similarity percentages).

    Attributes:
        high_confidence_threshold: Similarity at which approval is "high"
        auto_approve_threshold: Minimum similarity for auto-approval
        auto_approve_requires_checksum: Whether approval below the high
            threshold needs a checksum-valid extraction
        review_threshold: Minimum similarity for manual review (below: reject)
    """
    name: str = "lenient"
    high_confidence_threshold: int = 90
    auto_approve_threshold: int = 70
    auto_approve_requires_checksum: bool = False
    review_threshold: int = 70

    @classmethod
    def lenient(cls) -> 'DecisionPolicy':
        return cls(name="lenient")

    @classmethod
    def strict(cls) -> 'DecisionPolicy':
        return cls(
            name="strict",
            high_confidence_threshold=90,
            auto_approve_threshold=90,
            auto_approve_requires_checksum=True,
            review_threshold=70,
        )

    @classmethod
    def from_name(cls, name: str) -> 'DecisionPolicy':
        """
        Build a preset by name.

        Raises:
            ConfigurationError: If the name is not a known preset
        """
        presets = {"lenient": cls.lenient, "strict": cls.strict}
        key = (name or "").strip().lower()
        if key not in presets:
            raise ConfigurationError(
                f"Unknown decision policy '{name}'",
                config_key="decision.policy",
                expected=" | ".join(presets),
            )
        return presets[key]()

    def validate(self) -> None:
        """
        Check threshold ordering.

        Raises:
            ConfigurationError: If a threshold is outside 0-100 or out of order
        """
        for key in ("high_confidence_threshold", "auto_approve_threshold", "review_threshold"):
            value = getattr(self, key)
            if not 0 <= value <= 100:
                raise ConfigurationError(
                    f"{key} must be between 0 and 100, got {value}",
                    config_key=f"decision.{key}",
                    expected="0-100",
                )
        if self.review_threshold > self.auto_approve_threshold:
            raise ConfigurationError(
                "review_threshold cannot exceed auto_approve_threshold",
                config_key="decision.review_threshold",
                expected=f"<= {self.auto_approve_threshold}",
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "high_confidence_threshold": self.high_confidence_threshold,
            "auto_approve_threshold": self.auto_approve_threshold,
            "auto_approve_requires_checksum": self.auto_approve_requires_checksum,
            "review_threshold": self.review_threshold,
        }


# =============================================================================
# VERDICT
# =============================================================================

@dataclass
class VerificationVerdict:
    """
    Final output of a verification run.

    The only object handed to persistence. raw_ocr, variants_succeeded and
    processing_time_ms are informational.
    """
    extracted_vin: Optional[str]
    expected_vin: str
    similarity: int
    is_valid: bool
    confidence: ConfidenceTier
    recommendation: Recommendation
    notes: str
    raw_ocr: List[str] = field(default_factory=list)
    variants_succeeded: int = 0
    processing_time_ms: float = 0.0

    @property
    def matches(self) -> bool:
        return self.extracted_vin is not None and self.extracted_vin == self.expected_vin

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "extracted_vin": self.extracted_vin,
            "expected_vin": self.expected_vin,
            "similarity": self.similarity,
            "is_valid": self.is_valid,
            "confidence": self.confidence.value,
            "recommendation": self.recommendation.value,
            "notes": self.notes,
            "raw_ocr": list(self.raw_ocr),
            "variants_succeeded": self.variants_succeeded,
            "processing_time_ms": round(self.processing_time_ms, 1),
        }


# =============================================================================
# ENGINE
# =============================================================================

class DecisionEngine:
    """Applies a DecisionPolicy to an extracted/expected VIN pair."""

    def __init__(self, policy: Optional[DecisionPolicy] = None):
        self.policy = policy or DecisionPolicy.lenient()
        self.policy.validate()

    def decide(
        self,
        extracted: Optional[str],
        expected: str,
        is_valid: bool,
        **extra: Any,
    ) -> VerificationVerdict:
        """
        Classify the comparison. Rules are evaluated top to bottom.

        Args:
            extracted: VIN chosen by the extractor, or None
            expected: Normalized operator-entered VIN
            is_valid: Whether the extracted VIN passes structure and checksum
            **extra: Informational verdict fields (raw_ocr, variants_succeeded,
                processing_time_ms)

        Returns:
            VerificationVerdict
        """
        policy = self.policy
        similarity = calculate_similarity(extracted, expected)
        is_valid = bool(extracted) and is_valid

        if not extracted:
            recommendation, tier = Recommendation.MANUAL_REVIEW, ConfidenceTier.LOW
            reason = "No VIN could be read from the image"
        elif extracted == expected and is_valid:
            recommendation, tier = Recommendation.AUTO_APPROVE, ConfidenceTier.HIGH
            reason = "VIN verified: exact match"
        elif similarity >= policy.high_confidence_threshold and is_valid:
            recommendation, tier = Recommendation.AUTO_APPROVE, ConfidenceTier.HIGH
            reason = f"VIN approved with {similarity}% match"
        elif similarity >= policy.auto_approve_threshold and (
            is_valid or not policy.auto_approve_requires_checksum
        ):
            recommendation = Recommendation.AUTO_APPROVE
            tier = (
                ConfidenceTier.HIGH
                if similarity >= policy.high_confidence_threshold
                else ConfidenceTier.MEDIUM
            )
            reason = f"VIN approved with {similarity}% match, likely OCR error"
        elif similarity >= policy.review_threshold:
            recommendation, tier = Recommendation.MANUAL_REVIEW, ConfidenceTier.LOW
            reason = f"Partial match ({similarity}%), needs a human check"
        else:
            recommendation, tier = Recommendation.REJECT, ConfidenceTier.LOW
            reason = (
                f"Too many differences ({similarity}% match). "
                "Please verify the VIN or upload a clearer image"
            )

        notes = self.compose_notes(reason, expected, extracted, similarity)

        logger.info(
            f"Decision ({policy.name}): {recommendation.value}/{tier.value} "
            f"similarity={similarity}% valid={is_valid}"
        )

        return VerificationVerdict(
            extracted_vin=extracted or None,
            expected_vin=expected,
            similarity=similarity,
            is_valid=is_valid,
            confidence=tier,
            recommendation=recommendation,
            notes=notes,
            **extra,
        )

    @staticmethod
    def compose_notes(
        reason: str,
        expected: str,
        extracted: Optional[str],
        similarity: int,
    ) -> str:
        lines = [
            reason,
            f"Expected: {expected}",
            f"Extracted: {extracted or 'NONE'}",
            f"Similarity: {similarity}%",
            f"Differing characters: {differing_characters(similarity)}",
        ]
        return "\n".join(lines)
