"""
VIN Candidate Extraction
========================

Turns noisy OCR text into the most likely 17-character VIN.

Extraction never sees the VIN the operator typed in: it only knows the VIN
alphabet and the check digit. Comparison against the expected VIN happens in
the decision engine.

Usage:
    from vin_verify.core.extractor import extract_from_label, smart_extract

    candidate = extract_from_label("V.I.N. 2HGFA1F54AH570372 PASSENGER CAR")
    print(candidate.vin)               # 2HGFA1F54AH570372

    best = smart_extract(["#@!", "VIN 1HGBH41JXMN109186"])
    print(best.vin, best.confidence)   # 1HGBH41JXMN109186 100
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .vin_utils import VIN_LENGTH, is_valid_vin

logger = logging.getLogger(__name__)


CONFIDENCE_CHECKSUM_VALID = 100
CONFIDENCE_STRUCTURE_ONLY = 50

# Pre-compiled regex patterns for performance
_NON_ALNUM = re.compile(r'[^A-Z0-9]')
_EXCLUDED_LETTERS = re.compile(r'[IOQ]')
_VIN_RUN = re.compile(r'[A-HJ-NPR-Z0-9]{17,}')
# VINs built for North American markets start with 1-5
_REGIONAL_VIN = re.compile(r'[1-5][A-HJ-NPR-Z0-9]{16}')

# Label boilerplate removed before extraction, longest phrases first
_LABEL_PATTERNS: List[re.Pattern] = [
    re.compile(r'VEHICLE\s+IDENTIFICATION\s+NUMBER', re.IGNORECASE),
    re.compile(r'PASSENGER\s+CAR', re.IGNORECASE),
    re.compile(r'MANUFACTURED', re.IGNORECASE),
    re.compile(r'BARCODE', re.IGNORECASE),
    re.compile(r'V\.\s*I\.\s*N\.?', re.IGNORECASE),
    re.compile(r'\bVIN\b', re.IGNORECASE),
]

# A VIN printed right after one of these keywords outranks other candidates
_VIN_KEYWORD = re.compile(
    r'VEHICLE\s+IDENTIFICATION\s+NUMBER|\bV\.?\s*I\.?\s*N\b\.?', re.IGNORECASE
)


@dataclass(frozen=True)
class VINCandidate:
    """
    A structurally plausible VIN pulled out of OCR text.

    Attributes:
        vin: 17 characters from the VIN alphabet
        confidence: 100 when the check digit holds, 50 otherwise
        checksum_valid: Whether the check digit holds
        source_index: Index of the OCR text that produced it (smart path)
    """
    vin: str
    confidence: int
    checksum_valid: bool
    source_index: int = 0

    def __str__(self) -> str:
        return self.vin

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vin': self.vin,
            'confidence': self.confidence,
            'checksum_valid': self.checksum_valid,
            'source_index': self.source_index,
        }


def _make_candidate(vin: str, source_index: int = 0) -> VINCandidate:
    valid = is_valid_vin(vin)
    return VINCandidate(
        vin=vin,
        confidence=CONFIDENCE_CHECKSUM_VALID if valid else CONFIDENCE_STRUCTURE_ONLY,
        checksum_valid=valid,
        source_index=source_index,
    )


def clean_text(text: str) -> str:
    """
    Normalize raw OCR text for candidate search.

    Uppercases, drops everything outside [A-Z0-9] (whitespace, line breaks,
    punctuation) and deletes the letters I, O and Q. Excluded letters are
    removed, not substituted with 1/0.
    """
    if not text:
        return ''
    cleaned = _NON_ALNUM.sub('', text.upper())
    return _EXCLUDED_LETTERS.sub('', cleaned)


def strip_label_text(text: str) -> str:
    """Remove VIN label boilerplate ("VIN", "V.I.N.", "BARCODE", ...)."""
    if not text:
        return ''
    for pattern in _LABEL_PATTERNS:
        text = pattern.sub(' ', text)
    return text


def enumerate_candidates(text: str) -> List[str]:
    """
    List every 17-character VIN candidate in the text, in discovery order.

    Two independent sources, deduplicated with first occurrence kept:
    1. Maximal runs of VIN-alphabet characters of length >= 17: the run
       itself when it is exactly 17 long, otherwise every 17-wide window.
    2. Regional VIN pattern matches ([1-5] followed by 16 VIN characters).
    """
    cleaned = clean_text(text)
    if len(cleaned) < VIN_LENGTH:
        return []

    found: List[str] = []
    for run in _VIN_RUN.findall(cleaned):
        for offset in range(len(run) - VIN_LENGTH + 1):
            found.append(run[offset:offset + VIN_LENGTH])

    found.extend(_REGIONAL_VIN.findall(cleaned))

    # dict preserves insertion order
    return list(dict.fromkeys(found))


def extract_from_text(text: str) -> Optional[VINCandidate]:
    """
    Extract the most likely VIN from a single OCR text.

    Returns the first candidate with a valid check digit; failing that, the
    first candidate found (best effort, confidence 50); None when the text
    holds no 17-character candidate at all.

    Examples:
        >>> extract_from_text("CHASSIS 1HGBH41JXMN109186 ZZ").vin
        '1HGBH41JXMN109186'
        >>> extract_from_text("too short") is None
        True
    """
    candidates = enumerate_candidates(text)
    if not candidates:
        logger.debug(f"No VIN candidates in text: {text!r}")
        return None

    for vin in candidates:
        if is_valid_vin(vin):
            logger.debug(f"Checksum-valid candidate: {vin}")
            return _make_candidate(vin)

    logger.debug(
        f"No checksum-valid candidate among {len(candidates)}, "
        f"falling back to {candidates[0]}"
    )
    return _make_candidate(candidates[0])


def _keyword_candidate(text: str) -> Optional[VINCandidate]:
    """First checksum-valid VIN that starts right after a VIN keyword, if any."""
    for match in _VIN_KEYWORD.finditer(text):
        window = clean_text(strip_label_text(text[match.end():]))[:VIN_LENGTH]
        if len(window) == VIN_LENGTH and is_valid_vin(window):
            return _make_candidate(window)
    return None


def extract_from_label(text: str) -> Optional[VINCandidate]:
    """
    Extract a VIN from label-style OCR text.

    A checksum-valid VIN immediately following "VIN", "V.I.N." or "VEHICLE
    IDENTIFICATION NUMBER" is taken as is. Otherwise the label boilerplate
    is stripped and the rest goes through extract_from_text(). On multi-line
    labels this keeps a trailing "LBS" or similar from being glued onto the
    front of the VIN.
    """
    if not text:
        return None
    anchored = _keyword_candidate(text)
    if anchored is not None:
        logger.debug(f"Keyword-anchored candidate: {anchored.vin}")
        return anchored
    return extract_from_text(strip_label_text(text))


def smart_extract(texts: Iterable[str]) -> Optional[VINCandidate]:
    """
    Pick the best VIN across several OCR texts (one per image variant).

    Each text goes through the label path independently. A checksum-valid
    candidate scores 100, any other candidate 50; the highest score wins and
    ties go to the earliest text.

    Args:
        texts: OCR texts in variant order

    Returns:
        Winning VINCandidate tagged with its source index, or None
    """
    best: Optional[VINCandidate] = None

    for index, text in enumerate(texts):
        candidate = extract_from_label(text)
        if candidate is None:
            continue
        if best is None or candidate.confidence > best.confidence:
            best = VINCandidate(
                vin=candidate.vin,
                confidence=candidate.confidence,
                checksum_valid=candidate.checksum_valid,
                source_index=index,
            )

    if best is None:
        logger.info("No VIN candidate in any OCR result")
    else:
        logger.info(
            f"Selected VIN {best.vin} from result #{best.source_index} "
            f"(confidence={best.confidence})"
        )
    return best
