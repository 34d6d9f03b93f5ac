"""
Pipeline Configuration - Centralized Settings
==============================================

All configurable parameters in one place.
Supports environment variable overrides.

Usage:
    from vin_verify.config import get_config
    config = get_config()
    print(config.ocr.timeout)

Environment Variables:
    VIN_OCR_PROVIDER=tesseract
    VIN_OCR_TIMEOUT=30
    VIN_DOWNLOAD_TIMEOUT=30
    VIN_MAX_WORKERS=5
    VIN_DECISION_POLICY=strict
    VIN_LOG_LEVEL=DEBUG
"""

import os
import json
import logging
from dataclasses import dataclass, field, asdict, fields, is_dataclass
from pathlib import Path
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


def _get_env_float(key: str, default: float) -> float:
    """Get float from environment variable."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            logger.warning(f"Invalid float for {key}: {value}, using default {default}")
    return default


def _get_env_int(key: str, default: int) -> int:
    """Get int from environment variable."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Invalid int for {key}: {value}, using default {default}")
    return default


def _get_env_bool(key: str, default: bool) -> bool:
    """Get bool from environment variable."""
    value = os.environ.get(key)
    if value is not None:
        return value.lower() in ('true', '1', 'yes', 'on')
    return default


def _get_env_str(key: str, default: str) -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default)


def _get_env_optional_int(key: str) -> Optional[int]:
    """Get int from environment variable, None when unset."""
    if os.environ.get(key) is None:
        return None
    return _get_env_int(key, None)  # type: ignore[arg-type]


def _get_env_optional_bool(key: str) -> Optional[bool]:
    """Get bool from environment variable, None when unset."""
    if os.environ.get(key) is None:
        return None
    return _get_env_bool(key, False)


@dataclass
class AcquisitionConfig:
    """Image download settings."""

    download_timeout: float = field(
        default_factory=lambda: _get_env_float('VIN_DOWNLOAD_TIMEOUT', 30.0)
    )
    temp_prefix: str = field(
        default_factory=lambda: _get_env_str('VIN_TEMP_PREFIX', 'vin_verify_')
    )
    user_agent: str = 'vin-verify/1.0'


@dataclass
class PreprocessingConfig:
    """Image preprocessing configuration for the five OCR variants."""

    # Binarization thresholds per variant
    standard_threshold: int = 128
    high_contrast_threshold: int = 100
    upscaled_threshold: int = 130
    aggressive_threshold: int = 90

    # Linear contrast factors (applied around mid-grey)
    high_contrast_factor: float = 1.5
    aggressive_contrast_factor: float = 2.0

    # Unsharp mask
    sharpen_sigma: float = 1.5
    strong_sharpen_sigma: float = 2.0
    sharpen_amount: float = 1.0

    # Auto-contrast stretch percentiles
    normalize_low_percentile: float = 1.0
    normalize_high_percentile: float = 99.0

    # Upscaled variant
    upscale_factor: float = 2.0
    max_upscale_width: int = field(
        default_factory=lambda: _get_env_int('VIN_MAX_UPSCALE_WIDTH', 4000)
    )

    # Variant output format
    output_extension: str = '.png'


@dataclass
class OCRConfig:
    """OCR engine configuration."""

    provider: str = field(
        default_factory=lambda: _get_env_str('VIN_OCR_PROVIDER', 'tesseract')
    )
    language: str = field(
        default_factory=lambda: _get_env_str('VIN_OCR_LANG', 'eng')
    )
    timeout: float = field(
        default_factory=lambda: _get_env_float('VIN_OCR_TIMEOUT', 30.0)
    )
    # Tesseract page segmentation mode 7: treat the image as a single text line
    page_segmentation_mode: int = 7
    tesseract_cmd: Optional[str] = field(
        default_factory=lambda: os.environ.get('VIN_TESSERACT_CMD')
    )
    max_retries: int = field(
        default_factory=lambda: _get_env_int('VIN_OCR_MAX_RETRIES', 1)
    )
    use_gpu: bool = field(
        default_factory=lambda: _get_env_bool('VIN_USE_GPU', False)
    )


@dataclass
class ConcurrencyConfig:
    """Variant worker pool settings."""

    max_workers: int = field(
        default_factory=lambda: _get_env_int('VIN_MAX_WORKERS', 5)
    )
    # Wall-clock bound for one variant (preprocess + OCR)
    variant_timeout: float = field(
        default_factory=lambda: _get_env_float('VIN_VARIANT_TIMEOUT', 60.0)
    )
    # How often the orchestrator checks for cancellation
    poll_interval: float = 0.1


@dataclass
class DecisionConfig:
    """Verification decision thresholds."""

    policy: str = field(
        default_factory=lambda: _get_env_str('VIN_DECISION_POLICY', 'lenient')
    )
    # Explicit overrides applied on top of the named policy
    auto_approve_threshold: Optional[int] = field(
        default_factory=lambda: _get_env_optional_int('VIN_AUTO_APPROVE_THRESHOLD')
    )
    high_confidence_threshold: Optional[int] = field(
        default_factory=lambda: _get_env_optional_int('VIN_HIGH_CONFIDENCE_THRESHOLD')
    )
    review_threshold: Optional[int] = field(
        default_factory=lambda: _get_env_optional_int('VIN_REVIEW_THRESHOLD')
    )
    auto_approve_requires_checksum: Optional[bool] = field(
        default_factory=lambda: _get_env_optional_bool('VIN_APPROVE_REQUIRES_CHECKSUM')
    )

    def to_policy(self) -> 'DecisionPolicy':
        """Build the DecisionPolicy described by this section."""
        from .pipeline.decision import DecisionPolicy

        policy = DecisionPolicy.from_name(self.policy)
        overrides = {
            'auto_approve_threshold': self.auto_approve_threshold,
            'high_confidence_threshold': self.high_confidence_threshold,
            'review_threshold': self.review_threshold,
            'auto_approve_requires_checksum': self.auto_approve_requires_checksum,
        }
        for key, value in overrides.items():
            if value is not None:
                setattr(policy, key, value)
        policy.validate()
        return policy


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = field(
        default_factory=lambda: _get_env_str('VIN_LOG_LEVEL', 'INFO')
    )
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    date_format: str = '%Y-%m-%d %H:%M:%S'

    # File logging (optional)
    log_file: Optional[str] = field(
        default_factory=lambda: os.environ.get('VIN_LOG_FILE')
    )


@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""

    acquisition: AcquisitionConfig = field(default_factory=AcquisitionConfig)
    preprocessing: PreprocessingConfig = field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    decision: DecisionConfig = field(default_factory=DecisionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    def save(self, path: Path):
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> 'PipelineConfig':
        """Load configuration from JSON file. Unknown keys are ignored."""
        with open(path) as f:
            data = json.load(f)

        config = cls()

        for section in fields(config):
            section_obj = getattr(config, section.name)
            if section.name not in data or not is_dataclass(section_obj):
                continue
            for key, value in data[section.name].items():
                if hasattr(section_obj, key):
                    setattr(section_obj, key, value)
                else:
                    logger.warning(f"Ignoring unknown config key {section.name}.{key}")

        return config


# Global configuration instance (singleton pattern)
_config: Optional[PipelineConfig] = None


def get_config() -> PipelineConfig:
    """
    Get the global configuration instance.

    Creates a new instance on first call, returns cached instance thereafter.
    """
    global _config
    if _config is None:
        _config = PipelineConfig()
        _setup_logging(_config.logging)
    return _config


def reset_config():
    """Reset configuration to defaults (useful for testing)."""
    global _config
    _config = None


def _setup_logging(config: LoggingConfig):
    """Configure logging based on settings."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=level,
        format=config.format,
        datefmt=config.date_format,
        handlers=handlers,
    )
