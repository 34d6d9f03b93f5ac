"""
OCR Providers - Engine Abstraction Layer
========================================

Provides a unified interface for the OCR backends used on VIN variants:
- Tesseract (default, via pytesseract; one subprocess per call)
- PaddleOCR (optional extra, in-process model)

Every provider is restricted to the VIN alphabet and reports confidence on a
0-100 scale. Recognition failures raise OCRProviderError; the pipeline turns
them into a failed variant instead of aborting the run.

Usage:
    from vin_verify.providers import OCRProviderFactory, OCRProviderType

    provider = OCRProviderFactory.create(OCRProviderType.TESSERACT)
    result = provider.recognize("variant_standard.png")
    print(result.text, result.confidence)
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type, Union

import cv2
import numpy as np
import pytesseract
from pytesseract import Output

from ..config import OCRConfig, get_config
from ..core.vin_utils import VINConstants

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS AND DATA CLASSES
# =============================================================================

class OCRProviderType(str, Enum):
    """
    Supported OCR provider types.

    Use OCRProviderFactory.list_available() to check what is registered.
    """
    TESSERACT = "tesseract"
    PADDLEOCR = "paddleocr"


@dataclass
class OCRResult:
    """
    Standardized OCR result across all providers.

    Attributes:
        text: Recognized text, untrimmed
        confidence: Engine confidence on a 0-100 scale (0 when not reported)
        raw_response: Provider-specific raw response for debugging
        bounding_boxes: Detected word/line regions (optional)
        provider: Name of the OCR provider used
        metadata: Additional provider-specific metadata
    """
    text: str
    confidence: float
    raw_response: Any = None
    bounding_boxes: List[Dict[str, Any]] = field(default_factory=list)
    provider: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "text": self.text,
            "confidence": self.confidence,
            "provider": self.provider,
            "bounding_boxes": self.bounding_boxes,
            "metadata": self.metadata,
        }


@dataclass
class ProviderConfig:
    """Base configuration for OCR providers."""
    timeout: float = 30.0  # seconds
    max_retries: int = 1
    retry_delay: float = 0.5  # seconds
    whitelist: str = VINConstants.OCR_WHITELIST


@dataclass
class TesseractOCRConfig(ProviderConfig):
    """Tesseract-specific configuration."""
    lang: str = "eng"
    # 7 = treat the image as a single text line
    page_segmentation_mode: int = 7
    tesseract_cmd: Optional[str] = None

    def build_config_string(self) -> str:
        return f"--psm {self.page_segmentation_mode} -c tessedit_char_whitelist={self.whitelist}"


@dataclass
class PaddleOCRConfig(ProviderConfig):
    """PaddleOCR-specific configuration."""
    lang: str = "en"
    use_gpu: bool = False
    det_db_box_thresh: float = 0.3
    use_doc_orientation_classify: bool = False
    use_doc_unwarping: bool = False
    use_textline_orientation: bool = False
    ocr_version: str = "PP-OCRv3"  # PP-OCRv3 works better for VIN plates


class OCRProviderError(Exception):
    """Base exception for OCR provider errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.provider = provider
        self.details = details or {}
        super().__init__(f"[{provider}] {message}")


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class OCRProvider(ABC):
    """
    Abstract base class for OCR providers.

    All OCR backends must implement this interface so the pipeline can swap
    engines without touching orchestration code.

    Thread Safety: a single instance is shared by the variant workers, so
    implementations must be safe for concurrent recognize() calls.
    """

    _initialized: bool = False
    config: ProviderConfig

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        ...

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is available and properly configured."""
        ...

    @property
    def is_initialized(self) -> bool:
        """Check if the provider has been initialized."""
        return self._initialized

    @abstractmethod
    def initialize(self) -> None:
        """
        Initialize the OCR engine.

        Raises:
            OCRProviderError: If initialization fails
        """
        ...

    @abstractmethod
    def recognize(
        self,
        image: Union[str, Path, np.ndarray],
        **kwargs
    ) -> OCRResult:
        """
        Recognize text from an image.

        Args:
            image: Image path or numpy array
            **kwargs: Provider-specific options

        Returns:
            OCRResult with recognized text and confidence

        Raises:
            OCRProviderError: If recognition fails
        """
        ...

    def recognize_with_retry(
        self,
        image: Union[str, Path, np.ndarray],
        **kwargs
    ) -> OCRResult:
        """
        Recognize text with retry/backoff using provider config.
        """
        max_retries = getattr(self.config, "max_retries", 1) or 1
        retry_delay = getattr(self.config, "retry_delay", 0.0) or 0.0

        def _should_retry(exc: Exception) -> bool:
            return isinstance(exc, (OCRProviderError, TimeoutError, ConnectionError))

        for attempt in range(max_retries):
            try:
                return self.recognize(image, **kwargs)
            except Exception as exc:
                if attempt >= max_retries - 1 or not _should_retry(exc):
                    raise
                sleep_for = retry_delay * (2 ** attempt)
                logger.warning(
                    "Retrying OCR provider %s after error (attempt %d/%d, sleep %.2fs): %s",
                    self.name,
                    attempt + 1,
                    max_retries,
                    sleep_for,
                    exc,
                )
                if sleep_for > 0:
                    time.sleep(sleep_for)

        raise OCRProviderError("Recognition failed without exception", provider=self.name)

    def _load_image(self, image: Union[str, Path, np.ndarray]) -> np.ndarray:
        """
        Load image from path or return numpy array.

        Raises:
            OCRProviderError: If image cannot be loaded
        """
        if isinstance(image, np.ndarray):
            return image

        path = Path(image)
        if not path.exists():
            raise OCRProviderError(f"Image file not found: {path}", provider=self.name)

        img = cv2.imread(str(path))
        if img is None:
            raise OCRProviderError(f"Failed to load image: {path}", provider=self.name)

        return img


# =============================================================================
# TESSERACT PROVIDER
# =============================================================================

class TesseractOCRProvider(OCRProvider):
    """
    Tesseract-based text recognition provider.

    Runs the tesseract binary through pytesseract with the VIN whitelist and
    single-line page segmentation. Each call is its own subprocess, so one
    instance can serve all variant workers concurrently.
    """

    def __init__(self, config: Optional[TesseractOCRConfig] = None):
        self.config = config or TesseractOCRConfig()
        self._initialized = False
        self._version: Optional[str] = None

    @property
    def name(self) -> str:
        return "Tesseract"

    @property
    def is_available(self) -> bool:
        """Check if the tesseract binary can be executed."""
        self._apply_command()
        try:
            self._version = str(pytesseract.get_tesseract_version())
            return True
        except (pytesseract.TesseractNotFoundError, OSError):
            return False

    def initialize(self) -> None:
        """Verify the tesseract binary is reachable."""
        if self._initialized:
            return

        if not self.is_available:
            raise OCRProviderError(
                "Tesseract is not installed or not on PATH. Set VIN_TESSERACT_CMD "
                "to the tesseract executable.",
                provider=self.name,
                details={"tesseract_cmd": self.config.tesseract_cmd},
            )

        self._initialized = True
        logger.info(f"Tesseract {self._version} initialized (psm={self.config.page_segmentation_mode})")

    def _apply_command(self) -> None:
        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd

    def recognize(
        self,
        image: Union[str, Path, np.ndarray],
        **kwargs
    ) -> OCRResult:
        """
        Recognize a single line of VIN text.

        Args:
            image: Variant image path or numpy array
            **kwargs: Additional options (unused)

        Returns:
            OCRResult with raw text and mean word confidence
        """
        if not self._initialized:
            self.initialize()

        source = str(image) if isinstance(image, Path) else image

        try:
            data = pytesseract.image_to_data(
                source,
                lang=self.config.lang,
                config=self.config.build_config_string(),
                timeout=self.config.timeout,
                output_type=Output.DICT,
            )
        except (pytesseract.TesseractError, OSError, ValueError) as e:
            raise OCRProviderError(
                f"Tesseract recognition failed: {e}",
                provider=self.name,
                details={"error": str(e)},
            ) from e
        except RuntimeError as e:
            # TesseractError is a RuntimeError too; only the timeout reaches here
            raise OCRProviderError(
                f"Tesseract timed out after {self.config.timeout}s",
                provider=self.name,
                details={"error": str(e)},
            ) from e

        text, confidence, boxes = self._parse_result(data)

        return OCRResult(
            text=text,
            confidence=confidence,
            raw_response=data,
            bounding_boxes=boxes,
            provider=self.name,
            metadata={"lang": self.config.lang, "psm": self.config.page_segmentation_mode},
        )

    @staticmethod
    def _parse_result(data: Dict[str, List[Any]]) -> Tuple[str, float, List[Dict]]:
        """Rebuild line text from word-level data; confidence is the mean word conf."""
        words = data.get("text", []) or []
        confs = data.get("conf", []) or []

        lines: Dict[Tuple[int, int, int], List[str]] = {}
        boxes = []
        valid_confs = []

        for i, word in enumerate(words):
            try:
                conf = float(confs[i])
            except (IndexError, TypeError, ValueError):
                conf = -1.0
            # Tesseract reports -1 for non-word levels
            if conf >= 0:
                valid_confs.append(conf)

            word = str(word or "")
            if not word.strip():
                continue

            key = (
                _int_at(data, "block_num", i),
                _int_at(data, "par_num", i),
                _int_at(data, "line_num", i),
            )
            lines.setdefault(key, []).append(word)
            boxes.append({
                "text": word,
                "confidence": conf,
                "box": [
                    _int_at(data, "left", i),
                    _int_at(data, "top", i),
                    _int_at(data, "width", i),
                    _int_at(data, "height", i),
                ],
            })

        text = "\n".join(" ".join(line_words) for line_words in lines.values())
        confidence = sum(valid_confs) / len(valid_confs) if valid_confs else 0.0
        confidence = max(0.0, min(100.0, confidence))
        return text, confidence, boxes


def _int_at(data: Dict[str, List[Any]], key: str, index: int) -> int:
    values = data.get(key) or []
    try:
        return int(values[index])
    except (IndexError, TypeError, ValueError):
        return 0


# =============================================================================
# PADDLEOCR PROVIDER
# =============================================================================

class PaddleOCRProvider(OCRProvider):
    """
    PaddleOCR-based text recognition provider.

    Optional engine, installed with the ``paddle`` extra. PaddleOCR has no
    character whitelist, so recognized text is filtered to the VIN alphabet
    afterwards; its 0-1 scores are scaled to 0-100. The model is not safe for
    concurrent inference, so calls are serialized with a lock.
    """

    def __init__(self, config: Optional[PaddleOCRConfig] = None):
        self.config = config or PaddleOCRConfig()
        self._ocr = None
        self._initialized = False
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "PaddleOCR"

    @property
    def is_available(self) -> bool:
        """Check if PaddleOCR is installed."""
        try:
            from paddleocr import PaddleOCR  # noqa: F401
            return True
        except ImportError:
            return False

    def initialize(self) -> None:
        """Initialize PaddleOCR engine."""
        with self._lock:
            if self._initialized:
                return

            if not self.is_available:
                raise OCRProviderError(
                    "PaddleOCR is not installed. Run: pip install 'vin-verify[paddle]'",
                    provider=self.name
                )

            try:
                from paddleocr import PaddleOCR

                logger.info(f"Initializing PaddleOCR with {self.config.ocr_version}...")
                self._ocr = PaddleOCR(
                    lang=self.config.lang,
                    ocr_version=self.config.ocr_version,
                    use_doc_orientation_classify=self.config.use_doc_orientation_classify,
                    use_doc_unwarping=self.config.use_doc_unwarping,
                    use_textline_orientation=self.config.use_textline_orientation,
                    text_det_box_thresh=self.config.det_db_box_thresh,
                    device="gpu" if self.config.use_gpu else "cpu",
                )
                self._initialized = True
                logger.info(f"PaddleOCR ({self.config.ocr_version}) initialized successfully")

            except Exception as e:
                raise OCRProviderError(
                    f"Failed to initialize PaddleOCR: {e}",
                    provider=self.name,
                    details={"error": str(e)}
                ) from e

    def recognize(
        self,
        image: Union[str, Path, np.ndarray],
        **kwargs
    ) -> OCRResult:
        """
        Recognize text using PaddleOCR.

        Args:
            image: Image path or numpy array
            **kwargs: Additional options (unused)

        Returns:
            OCRResult with whitelist-filtered text
        """
        if not self._initialized:
            self.initialize()

        img = self._load_image(image)
        # Binarized variants are single-channel; PaddleOCR expects BGR
        if img.ndim == 2:
            img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)

        try:
            with self._lock:
                result = self._ocr.predict(img)
        except Exception as e:
            raise OCRProviderError(
                f"OCR prediction failed: {e}",
                provider=self.name,
                details={"error": str(e)}
            ) from e

        raw_text, confidence, boxes = self._parse_result(result)
        text = self._filter_whitelist(raw_text)

        return OCRResult(
            text=text,
            confidence=confidence,
            raw_response=result,
            bounding_boxes=boxes,
            provider=self.name,
            metadata={"lang": self.config.lang, "unfiltered_text": raw_text}
        )

    def _filter_whitelist(self, text: str) -> str:
        allowed = set(self.config.whitelist)
        return "".join(c for c in text if c in allowed or c.isspace())

    def _parse_result(self, result: Any) -> Tuple[str, float, List[Dict]]:
        """Parse PaddleOCR result format."""
        if not result:
            return "", 0.0, []

        # PaddleOCR v3.x returns a list with one dict per page
        if isinstance(result, list):
            result = result[0]

        if isinstance(result, dict):
            texts = result.get('rec_texts', [])
            scores = result.get('rec_scores', [])
            dt_polys = result.get('dt_polys', [])

            if texts:
                full_text = ' '.join(texts)
                avg_score = float(np.mean(scores)) * 100.0 if len(scores) else 0.0

                boxes = []
                for i, poly in enumerate(dt_polys):
                    boxes.append({
                        "text": texts[i] if i < len(texts) else "",
                        "confidence": float(scores[i]) * 100.0 if i < len(scores) else 0.0,
                        "polygon": poly.tolist() if hasattr(poly, 'tolist') else poly
                    })

                return full_text, max(0.0, min(100.0, avg_score)), boxes

        return "", 0.0, []


# =============================================================================
# PROVIDER FACTORY
# =============================================================================

class OCRProviderFactory:
    """
    Factory for creating OCR provider instances.

    Usage:
        provider = OCRProviderFactory.create(OCRProviderType.TESSERACT)
        provider = OCRProviderFactory.create("paddleocr", use_gpu=True)
    """

    _providers: Dict[OCRProviderType, Type[OCRProvider]] = {
        OCRProviderType.TESSERACT: TesseractOCRProvider,
        OCRProviderType.PADDLEOCR: PaddleOCRProvider,
    }

    @classmethod
    def create(
        cls,
        provider_type: Union[str, OCRProviderType],
        auto_initialize: bool = True,
        ocr_config: Optional[OCRConfig] = None,
        **kwargs
    ) -> OCRProvider:
        """
        Create an OCR provider instance.

        Args:
            provider_type: Type of provider to create
            auto_initialize: Whether to initialize immediately
            ocr_config: OCR settings (global config when None)
            **kwargs: Provider-specific overrides

        Returns:
            Configured OCRProvider instance

        Raises:
            ValueError: If provider type is not supported
        """
        if isinstance(provider_type, str):
            try:
                provider_type = OCRProviderType(provider_type.lower())
            except ValueError:
                available = [p.value for p in OCRProviderType]
                raise ValueError(
                    f"Unknown provider type: '{provider_type}'. "
                    f"Available: {available}"
                )

        provider_class = cls._providers.get(provider_type)
        if provider_class is None:
            raise ValueError(f"Provider not implemented: {provider_type.value}")

        config = cls._create_config(provider_type, ocr_config or get_config().ocr, **kwargs)
        provider = provider_class(config=config)

        if auto_initialize and provider.is_available:
            provider.initialize()

        return provider

    @classmethod
    def _create_config(
        cls,
        provider_type: OCRProviderType,
        ocr: OCRConfig,
        **kwargs
    ) -> ProviderConfig:
        """Create provider-specific config from OCRConfig plus kwargs."""
        common = {
            'timeout': kwargs.get('timeout', ocr.timeout),
            'max_retries': kwargs.get('max_retries', ocr.max_retries),
        }
        if provider_type == OCRProviderType.TESSERACT:
            return TesseractOCRConfig(
                lang=kwargs.get('lang', ocr.language),
                page_segmentation_mode=kwargs.get('page_segmentation_mode', ocr.page_segmentation_mode),
                tesseract_cmd=kwargs.get('tesseract_cmd', ocr.tesseract_cmd),
                **common,
            )
        elif provider_type == OCRProviderType.PADDLEOCR:
            return PaddleOCRConfig(
                lang=kwargs.get('lang', 'en'),
                use_gpu=kwargs.get('use_gpu', ocr.use_gpu),
                det_db_box_thresh=kwargs.get('det_db_box_thresh', 0.3),
                **common,
            )
        else:
            return ProviderConfig(**common)

    @classmethod
    def list_available(cls) -> List[str]:
        """List all registered provider types."""
        return [p.value for p in cls._providers.keys()]

    @classmethod
    def register(
        cls,
        provider_type: OCRProviderType,
        provider_class: type
    ) -> None:
        """
        Register a new provider type.

        Args:
            provider_type: The provider type enum value
            provider_class: The provider class to register
        """
        if not issubclass(provider_class, OCRProvider):
            raise TypeError(
                f"Provider class must inherit from OCRProvider, "
                f"got {provider_class.__name__}"
            )
        cls._providers[provider_type] = provider_class
        logger.info(f"Registered OCR provider: {provider_type.value}")
