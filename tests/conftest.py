"""
Shared pytest fixtures.
"""

import pytest

from vin_verify.config import reset_config

_ENV_KEYS = (
    "VIN_OCR_PROVIDER",
    "VIN_OCR_TIMEOUT",
    "VIN_OCR_LANG",
    "VIN_OCR_MAX_RETRIES",
    "VIN_TESSERACT_CMD",
    "VIN_USE_GPU",
    "VIN_DOWNLOAD_TIMEOUT",
    "VIN_TEMP_PREFIX",
    "VIN_MAX_UPSCALE_WIDTH",
    "VIN_MAX_WORKERS",
    "VIN_VARIANT_TIMEOUT",
    "VIN_DECISION_POLICY",
    "VIN_AUTO_APPROVE_THRESHOLD",
    "VIN_HIGH_CONFIDENCE_THRESHOLD",
    "VIN_REVIEW_THRESHOLD",
    "VIN_APPROVE_REQUIRES_CHECKSUM",
    "VIN_LOG_LEVEL",
    "VIN_LOG_FILE",
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Every test starts from default settings, whatever the shell exports."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()
