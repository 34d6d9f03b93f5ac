"""
VIN Image Preprocessing Module
==============================

Classes:
    VINPreprocessor: Produces the five OCR variants of a VIN plate photo
    PreprocessStrategy: Variant enumeration, in run order
    PreprocessedVariant: A variant image written to disk

Usage:
    from vin_verify.preprocessing import VINPreprocessor

    preprocessor = VINPreprocessor()
    variants = preprocessor.generate_variants("plate.jpg", workdir)
"""

from .vin_preprocessor import (
    VINPreprocessor,
    PreprocessStrategy,
    PreprocessedVariant,
)

__all__ = [
    'VINPreprocessor',
    'PreprocessStrategy',
    'PreprocessedVariant',
]
