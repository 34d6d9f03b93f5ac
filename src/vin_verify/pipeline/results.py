"""
Per-variant outcomes.

Each preprocessing variant ends as exactly one Ok or Err. A failed variant
degrades the run instead of aborting it: Err items are logged and left out of
extraction.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Union

from ..preprocessing import PreprocessStrategy


# Where an Err happened
STAGE_PREPROCESS = "preprocess"
STAGE_OCR = "ocr"
STAGE_TIMEOUT = "timeout"
STAGE_CANCELLED = "cancelled"


@dataclass(frozen=True)
class Ok:
    """OCR text read from one variant."""
    strategy: PreprocessStrategy
    text: str
    confidence: float

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "ok": True,
            "text": self.text,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Err:
    """A variant that produced no OCR text."""
    strategy: PreprocessStrategy
    reason: str
    stage: str = STAGE_OCR

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "ok": False,
            "reason": self.reason,
            "stage": self.stage,
        }


VariantOutcome = Union[Ok, Err]


def successful_texts(outcomes: Sequence[VariantOutcome]) -> List[str]:
    """OCR texts of the Ok outcomes, in variant order."""
    return [outcome.text for outcome in outcomes if isinstance(outcome, Ok)]


def all_failed_preprocessing(outcomes: Sequence[VariantOutcome]) -> bool:
    return bool(outcomes) and all(
        isinstance(outcome, Err) and outcome.stage == STAGE_PREPROCESS
        for outcome in outcomes
    )
