"""
VIN Image Preprocessor
======================

Produces the five image variants fed to OCR. A stamped or printed VIN plate
photographed in a parking lot can defeat any single recipe, so every photo
is run through all of them and the extractor picks the best reading.

Variants (in order):

- STANDARD: normalize, sharpen, binarize at 128
- HIGH_CONTRAST: linear contrast x1.5 around mid-grey, binarize at 100
- INVERTED: negate, normalize (light text on dark plates)
- UPSCALED: 2x Lanczos upscale, strong sharpen, normalize, binarize at 130
- AGGRESSIVE: linear contrast x2.0, sharpen, binarize at 90

Recipes are independent and stateless: each one reads the source image and
returns a new single-channel image.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import cv2
import numpy as np

from ..config import PreprocessingConfig
from ..core.errors import PreprocessingFailed

logger = logging.getLogger(__name__)


class PreprocessStrategy(str, Enum):
    """Preprocessing variant enumeration, in the order variants are run."""
    STANDARD = 'standard'
    HIGH_CONTRAST = 'high_contrast'
    INVERTED = 'inverted'
    UPSCALED = 'upscaled'
    AGGRESSIVE = 'aggressive'


@dataclass(frozen=True)
class PreprocessedVariant:
    """A variant image written to the run workspace."""
    strategy: PreprocessStrategy
    path: Path


class VINPreprocessor:
    """
    VIN image preprocessor producing one image per strategy.

    Example:
        preprocessor = VINPreprocessor()
        image = preprocessor.load_image("plate.jpg")
        binary = preprocessor.process(image, PreprocessStrategy.STANDARD)

        # Write all five variants into a directory
        variants = preprocessor.generate_variants("plate.jpg", workdir)
    """

    def __init__(self, config: Optional[PreprocessingConfig] = None):
        self.config = config or PreprocessingConfig()

        self._recipes = {
            PreprocessStrategy.STANDARD: self._process_standard,
            PreprocessStrategy.HIGH_CONTRAST: self._process_high_contrast,
            PreprocessStrategy.INVERTED: self._process_inverted,
            PreprocessStrategy.UPSCALED: self._process_upscaled,
            PreprocessStrategy.AGGRESSIVE: self._process_aggressive,
        }

    @property
    def strategies(self) -> List[PreprocessStrategy]:
        return list(PreprocessStrategy)

    def process(
        self,
        image: np.ndarray,
        strategy: Union[PreprocessStrategy, str],
    ) -> np.ndarray:
        """
        Apply one recipe to an in-memory image.

        Args:
            image: Input image (BGR, BGRA or grayscale)
            strategy: Variant to produce

        Returns:
            Single-channel uint8 image

        Raises:
            ValueError: If the image is empty or the strategy unknown
        """
        if image is None or image.size == 0:
            raise ValueError("Input image is empty or None")

        strategy = PreprocessStrategy(strategy)
        return self._recipes[strategy](image)

    # -------------------------------------------------------------------------
    # Recipes
    # -------------------------------------------------------------------------

    def _process_standard(self, image: np.ndarray) -> np.ndarray:
        gray = self._to_gray(image)
        normalized = self._normalize(gray)
        sharpened = self._sharpen(normalized, self.config.sharpen_sigma)
        return self._threshold(sharpened, self.config.standard_threshold)

    def _process_high_contrast(self, image: np.ndarray) -> np.ndarray:
        gray = self._to_gray(image)
        contrasted = self._linear_contrast(gray, self.config.high_contrast_factor)
        return self._threshold(contrasted, self.config.high_contrast_threshold)

    def _process_inverted(self, image: np.ndarray) -> np.ndarray:
        gray = self._to_gray(image)
        return self._normalize(cv2.bitwise_not(gray))

    def _process_upscaled(self, image: np.ndarray) -> np.ndarray:
        """Upscale first so that small stamped characters survive sharpening."""
        upscaled = self._upscale(image)
        gray = self._to_gray(upscaled)
        sharpened = self._sharpen(gray, self.config.strong_sharpen_sigma)
        normalized = self._normalize(sharpened)
        return self._threshold(normalized, self.config.upscaled_threshold)

    def _process_aggressive(self, image: np.ndarray) -> np.ndarray:
        gray = self._to_gray(image)
        contrasted = self._linear_contrast(gray, self.config.aggressive_contrast_factor)
        sharpened = self._sharpen(contrasted, self.config.sharpen_sigma)
        return self._threshold(sharpened, self.config.aggressive_threshold)

    # -------------------------------------------------------------------------
    # Building blocks
    # -------------------------------------------------------------------------

    @staticmethod
    def _to_gray(image: np.ndarray) -> np.ndarray:
        if image.ndim == 2:
            return image
        if image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

    def _normalize(self, gray: np.ndarray) -> np.ndarray:
        """Stretch the low/high percentiles to the full 0-255 range."""
        low, high = np.percentile(
            gray,
            (self.config.normalize_low_percentile, self.config.normalize_high_percentile),
        )
        if high <= low:
            return gray.copy()
        stretched = (gray.astype(np.float32) - low) * (255.0 / (high - low))
        return np.clip(stretched, 0, 255).astype(np.uint8)

    def _sharpen(self, gray: np.ndarray, sigma: float) -> np.ndarray:
        """Unsharp mask."""
        amount = self.config.sharpen_amount
        blurred = cv2.GaussianBlur(gray, (0, 0), sigma)
        return cv2.addWeighted(gray, 1 + amount, blurred, -amount, 0)

    @staticmethod
    def _linear_contrast(gray: np.ndarray, factor: float) -> np.ndarray:
        # Mid-grey (128) is the fixed point
        adjusted = gray.astype(np.float32) * factor + 128.0 * (1.0 - factor)
        return np.clip(adjusted, 0, 255).astype(np.uint8)

    @staticmethod
    def _threshold(gray: np.ndarray, value: int) -> np.ndarray:
        _, binary = cv2.threshold(gray, value, 255, cv2.THRESH_BINARY)
        return binary

    def _upscale(self, image: np.ndarray) -> np.ndarray:
        h, w = image.shape[:2]
        new_w = min(int(round(w * self.config.upscale_factor)), self.config.max_upscale_width)
        new_w = max(new_w, 1)
        new_h = max(int(round(h * new_w / w)), 1)
        return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LANCZOS4)

    # -------------------------------------------------------------------------
    # File I/O
    # -------------------------------------------------------------------------

    def load_image(self, path: Union[str, Path]) -> np.ndarray:
        """
        Decode an image file.

        Raises:
            PreprocessingFailed: If the file cannot be decoded as an image
        """
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None or image.size == 0:
            raise PreprocessingFailed(f"could not decode image {path}")
        return image

    def write_variant(
        self,
        image: np.ndarray,
        strategy: Union[PreprocessStrategy, str],
        output_dir: Union[str, Path],
    ) -> Path:
        """Write a variant image to a file name no other variant or run uses."""
        strategy = PreprocessStrategy(strategy)
        path = Path(output_dir) / (
            f"variant_{strategy.value}_{uuid.uuid4().hex[:8]}{self.config.output_extension}"
        )
        try:
            written = cv2.imwrite(str(path), image)
        except cv2.error as e:
            raise PreprocessingFailed(f"could not write variant {strategy.value}: {e}") from e
        if not written:
            raise PreprocessingFailed(f"could not write variant {strategy.value} to {path}")
        return path

    def generate_variant(
        self,
        image: np.ndarray,
        strategy: Union[PreprocessStrategy, str],
        output_dir: Union[str, Path],
    ) -> PreprocessedVariant:
        """Apply one recipe to a decoded image and write the result to output_dir."""
        strategy = PreprocessStrategy(strategy)
        processed = self.process(image, strategy)
        return PreprocessedVariant(
            strategy=strategy,
            path=self.write_variant(processed, strategy, output_dir),
        )

    def generate_variants(
        self,
        image_path: Union[str, Path],
        output_dir: Union[str, Path],
        strategies: Optional[Iterable[PreprocessStrategy]] = None,
    ) -> List[PreprocessedVariant]:
        """
        Produce every variant for an image file.

        Individual recipe failures are logged and skipped.

        Raises:
            PreprocessingFailed: If the image is undecodable or no variant succeeds
        """
        image = self.load_image(image_path)

        variants: List[PreprocessedVariant] = []
        failures: Dict[str, str] = {}

        for strategy in strategies or self.strategies:
            strategy = PreprocessStrategy(strategy)
            try:
                variants.append(self.generate_variant(image, strategy, output_dir))
            except Exception as e:
                logger.warning(f"Variant {strategy.value} failed: {e}")
                failures[strategy.value] = str(e)

        if not variants:
            raise PreprocessingFailed("no preprocessing variant succeeded", failures=failures)

        logger.debug(f"Generated {len(variants)} variants from {image_path}")
        return variants
