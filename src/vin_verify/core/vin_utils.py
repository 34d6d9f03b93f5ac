"""
VIN Utilities - Single Source of Truth
======================================

VIN alphabet, check digit arithmetic and structural validation shared by the
extractor, the decision engine and the CLI.

Everything in this module is a pure function: no I/O, no global state.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# VIN CONSTANTS
# =============================================================================

class VINConstants:
    """Immutable VIN specification constants per ISO 3779 / NHTSA."""

    LENGTH: int = 17

    # Valid characters (I, O, Q excluded to avoid confusion with 1, 0)
    VALID_CHARS: FrozenSet[str] = frozenset("0123456789ABCDEFGHJKLMNPRSTUVWXYZ")
    INVALID_CHARS: FrozenSet[str] = frozenset("IOQ")

    # OCR whitelist, same alphabet in engine-friendly order
    OCR_WHITELIST: str = "ABCDEFGHJKLMNPRSTUVWXYZ0123456789"

    # Position indices (1-based, ISO 3779)
    CHECK_DIGIT_POSITION: int = 9

    # Checksum weights by position (NHTSA standard)
    CHECKSUM_WEIGHTS: Tuple[int, ...] = (8, 7, 6, 5, 4, 3, 2, 10, 0, 9, 8, 7, 6, 5, 4, 3, 2)

    # Character to value mapping for checksum (ISO 3779)
    CHAR_VALUES: Dict[str, int] = {
        'A': 1, 'B': 2, 'C': 3, 'D': 4, 'E': 5, 'F': 6, 'G': 7, 'H': 8,
        'J': 1, 'K': 2, 'L': 3, 'M': 4, 'N': 5, 'P': 7, 'R': 9,
        'S': 2, 'T': 3, 'U': 4, 'V': 5, 'W': 6, 'X': 7, 'Y': 8, 'Z': 9,
        '0': 0, '1': 1, '2': 2, '3': 3, '4': 4, '5': 5, '6': 6, '7': 7, '8': 8, '9': 9
    }

    # First characters assigned to manufacturing regions
    # 1-5 North America, J Japan, K Korea, L China, S UK, V France/Spain,
    # W Germany, Z Italy
    MANUFACTURER_FIRST_CHARS: FrozenSet[str] = frozenset("12345JKLSVWZ")

    # Words printed on compliance labels that never belong to a VIN
    LABEL_WORDS: Tuple[str, ...] = (
        'BUMPER', 'SAFETY', 'MOTOR', 'VEHICLE', 'THEFT', 'PREVENTION',
        'FEDERAL', 'STANDARD', 'MANUFACTURE', 'PASSENGER', 'CONFORM',
        'APPLICABLE', 'EFFECT', 'SHOWN', 'ABOVE', 'DATE',
    )


VIN_LENGTH = VINConstants.LENGTH
VIN_VALID_CHARS = VINConstants.VALID_CHARS
VIN_INVALID_CHARS = VINConstants.INVALID_CHARS


# =============================================================================
# VIN VALIDATION
# =============================================================================

@dataclass
class VINValidationResult:
    """Result of VIN validation."""
    vin: str
    is_valid_length: bool
    has_valid_chars: bool
    invalid_chars: List[str]
    checksum_valid: bool
    expected_check_digit: Optional[str]
    is_fully_valid: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vin': self.vin,
            'is_valid_length': self.is_valid_length,
            'has_valid_chars': self.has_valid_chars,
            'invalid_chars': self.invalid_chars,
            'checksum_valid': self.checksum_valid,
            'expected_check_digit': self.expected_check_digit,
            'is_fully_valid': self.is_fully_valid,
        }


def validate_vin(vin: str) -> VINValidationResult:
    """
    Comprehensive VIN validation.

    Checks:
    1. Length (must be 17)
    2. Character validity (no I, O, Q, nothing outside the VIN alphabet)
    3. Checksum at position 9

    Unlike is_valid_vin(), the input is normalized first (uppercase,
    surrounding whitespace removed) so the breakdown is useful for humans
    typing a VIN into the CLI.

    Args:
        vin: VIN string to validate

    Returns:
        VINValidationResult with all validation details
    """
    vin = vin.upper().strip()

    is_valid_length = len(vin) == VIN_LENGTH

    invalid_chars = [c for c in vin if c not in VIN_VALID_CHARS]
    has_valid_chars = len(invalid_chars) == 0

    checksum_valid = False
    expected_check_digit = None

    if is_valid_length and has_valid_chars:
        expected_check_digit = calculate_check_digit(vin)
        if expected_check_digit:
            checksum_valid = vin[8] == expected_check_digit

    is_fully_valid = is_valid_length and has_valid_chars and checksum_valid

    return VINValidationResult(
        vin=vin,
        is_valid_length=is_valid_length,
        has_valid_chars=has_valid_chars,
        invalid_chars=invalid_chars,
        checksum_valid=checksum_valid,
        expected_check_digit=expected_check_digit,
        is_fully_valid=is_fully_valid,
    )


def calculate_check_digit(vin: str) -> Optional[str]:
    """
    Calculate the expected check digit for a VIN.

    The check digit (position 9) is calculated by:
    1. Assigning numeric values to each character
    2. Multiplying by position weights
    3. Summing and taking mod 11
    4. Result 10 becomes 'X'

    Args:
        vin: 17-character VIN (check digit position is ignored, its weight is 0)

    Returns:
        Expected check digit ('0'-'9' or 'X'), or None if any character
        has no transliteration value
    """
    if len(vin) != VIN_LENGTH:
        return None

    total = 0
    for i, char in enumerate(vin):
        if i == 8:  # Skip check digit position
            continue
        value = VINConstants.CHAR_VALUES.get(char)
        if value is None:
            return None
        total += value * VINConstants.CHECKSUM_WEIGHTS[i]

    remainder = total % 11
    return 'X' if remainder == 10 else str(remainder)


def validate_checksum(vin: str) -> bool:
    """
    Validate VIN checksum at position 9.

    Case-sensitive: lowercase letters have no transliteration value and
    fail, which keeps the validator strict for OCR output.

    Args:
        vin: 17-character VIN to validate

    Returns:
        True if checksum is valid, False otherwise
    """
    if len(vin) != VIN_LENGTH:
        return False

    expected = calculate_check_digit(vin)
    if expected is None:
        return False

    return vin[8] == expected


def validate_vin_format(vin: str) -> bool:
    """
    Quick check if VIN has valid structure (length and characters).

    Does NOT check checksum. Use is_valid_vin() for full validation.
    """
    if not isinstance(vin, str) or len(vin) != VIN_LENGTH:
        return False
    return all(c in VIN_VALID_CHARS for c in vin)


def is_valid_vin(vin: Any) -> bool:
    """
    Full VIN validity: structure AND check digit.

    True iff ``vin`` is a 17-character string drawn from the VIN alphabet
    whose position-9 character equals the computed check digit. Anything
    else (None, non-strings, lowercase, wrong length) is False.

    Examples:
        >>> is_valid_vin("1HGBH41JXMN109186")
        True
        >>> is_valid_vin("1HGBH41JXMN109187")
        False
    """
    if not validate_vin_format(vin):
        return False
    return validate_checksum(vin)


# =============================================================================
# DIAGNOSTIC HEURISTICS
# =============================================================================

def has_valid_manufacturer_code(vin: str) -> bool:
    """Check if the first character belongs to a known manufacturing region."""
    if not vin:
        return False
    return vin[0] in VINConstants.MANUFACTURER_FIRST_CHARS


def contains_label_words(text: str) -> bool:
    """Check if text contains compliance label words (not part of any VIN)."""
    upper = text.upper()
    return any(word in upper for word in VINConstants.LABEL_WORDS)
