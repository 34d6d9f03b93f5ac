"""
VIN OCR Providers Module
========================

OCR provider abstraction layer.

Supported providers:
- Tesseract (default, via pytesseract)
- PaddleOCR (optional ``paddle`` extra)

Usage:
    from vin_verify.providers import OCRProviderFactory

    provider = OCRProviderFactory.create("tesseract")
    result = provider.recognize(variant_path)
    print(result.text, result.confidence)
"""

from .ocr_providers import (
    OCRProviderType,
    OCRResult,
    OCRProvider,
    OCRProviderError,
    TesseractOCRProvider,
    PaddleOCRProvider,
    OCRProviderFactory,
    ProviderConfig,
    TesseractOCRConfig,
    PaddleOCRConfig,
)

__all__ = [
    # Providers
    "OCRProviderType",
    "OCRResult",
    "OCRProvider",
    "OCRProviderError",
    "TesseractOCRProvider",
    "PaddleOCRProvider",
    "OCRProviderFactory",
    # Configs
    "ProviderConfig",
    "TesseractOCRConfig",
    "PaddleOCRConfig",
]
