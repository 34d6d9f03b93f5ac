"""
VIN Verification Pipeline
=========================

End-to-end verification of a VIN plate photo against an operator-entered VIN:

    acquire -> 5 preprocessing variants -> OCR per variant
            -> smart extraction -> checksum validation -> decision

Variants run in a bounded thread pool. A variant that fails or times out is
dropped from extraction. The run fails outright when the image cannot be
acquired, when no variant can be preprocessed, when no variant yields OCR
text or when the caller cancels.

Usage:
    from vin_verify.pipeline import VINVerificationPipeline

    pipeline = VINVerificationPipeline()
    verdict = pipeline.verify("plate.jpg", "2HGFA1F54AH570372")
    print(verdict.recommendation, verdict.confidence)
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from ..acquisition import ImageAcquirer, ImageSource, RunWorkspace
from ..config import PipelineConfig, get_config
from ..core.errors import (
    ConfigurationError,
    InvalidInput,
    OcrUnavailable,
    PipelineCancelled,
    PreprocessingFailed,
    RecognitionFailed,
)
from ..core.extractor import smart_extract
from ..core.vin_utils import VIN_LENGTH, is_valid_vin, validate_vin_format
from ..preprocessing import PreprocessStrategy, VINPreprocessor
from ..providers import OCRProvider, OCRProviderFactory
from .decision import DecisionEngine, VerificationVerdict
from .persistence import VehicleRecord, VerdictRecorder, verification_status
from .results import (
    STAGE_CANCELLED,
    STAGE_OCR,
    STAGE_PREPROCESS,
    STAGE_TIMEOUT,
    Err,
    Ok,
    VariantOutcome,
    all_failed_preprocessing,
    successful_texts,
)

logger = logging.getLogger(__name__)


def normalize_expected_vin(expected_vin: Any) -> str:
    """
    Remove all whitespace and uppercase.

    Raises:
        InvalidInput: If the VIN is missing or not 17 characters afterwards
    """
    if not isinstance(expected_vin, str) or not expected_vin.strip():
        raise InvalidInput("expected VIN is missing", value=expected_vin)

    normalized = "".join(expected_vin.split()).upper()
    if len(normalized) != VIN_LENGTH:
        raise InvalidInput(
            f"expected VIN must be {VIN_LENGTH} characters, got {len(normalized)}",
            value=expected_vin,
        )
    if not validate_vin_format(normalized):
        logger.warning(f"Expected VIN {normalized} contains characters outside the VIN alphabet")
    return normalized


class VINVerificationPipeline:
    """
    Verifies a VIN plate photo against an expected VIN.

    All collaborators are injectable; defaults are built from PipelineConfig.
    One instance can serve concurrent verify() calls: each call owns its
    workspace and thread pool, and the OCR provider is shared.

    Example:
        pipeline = VINVerificationPipeline()
        verdict = pipeline.verify("https://cdn.example.com/vin.jpg", "5TFDY5F17KX901234")
        print(verdict.to_dict())
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        provider: Optional[OCRProvider] = None,
        preprocessor: Optional[VINPreprocessor] = None,
        acquirer: Optional[ImageAcquirer] = None,
        decision_engine: Optional[DecisionEngine] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Pipeline configuration (global config if None)
            provider: OCR provider (created from config.ocr on first use if None)
            preprocessor: Variant generator
            acquirer: Image resolver/downloader
            decision_engine: Decision policy holder

        Raises:
            ConfigurationError: If the configured decision policy is invalid
        """
        self.config = config or get_config()
        self.preprocessor = preprocessor or VINPreprocessor(self.config.preprocessing)
        self.acquirer = acquirer or ImageAcquirer(self.config.acquisition)
        self.decision_engine = decision_engine or DecisionEngine(self.config.decision.to_policy())
        self._provider = provider
        self._provider_lock = threading.Lock()

    @property
    def provider(self) -> OCRProvider:
        with self._provider_lock:
            if self._provider is None:
                try:
                    self._provider = OCRProviderFactory.create(
                        self.config.ocr.provider,
                        auto_initialize=False,
                        ocr_config=self.config.ocr,
                    )
                except ValueError as e:
                    raise ConfigurationError(
                        str(e), config_key="ocr.provider", expected="tesseract | paddleocr"
                    ) from e
                logger.info(f"Using OCR provider {self._provider.name}")
            return self._provider

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def verify(
        self,
        image_source: Union[str, Path, ImageSource],
        expected_vin: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> VerificationVerdict:
        """
        Verify a VIN plate photo.

        Args:
            image_source: Local path or http(s) URL of the photo
            expected_vin: VIN entered by the operator
            cancel_event: Set it to abandon the run

        Returns:
            VerificationVerdict. OCR text without a readable VIN is a
            manual_review verdict, not an error.

        Raises:
            InvalidInput: Expected VIN or image source unusable
            AcquisitionFailed: Photo could not be fetched or read
            PreprocessingFailed: Photo undecodable or no variant produced
            RecognitionFailed: No variant produced OCR text
            PipelineCancelled: cancel_event was set
            ConfigurationError: OCR provider misconfigured
        """
        expected = normalize_expected_vin(expected_vin)
        source = ImageSource.parse(image_source)
        cancel_event = cancel_event or threading.Event()
        provider = self.provider
        start = time.perf_counter()

        logger.info(f"Verifying {source} against {expected}")

        with RunWorkspace(prefix=self.config.acquisition.temp_prefix) as workspace:
            self._check_cancelled(cancel_event, "acquisition")
            image_path = self.acquirer.resolve(source, workspace.path)

            self._check_cancelled(cancel_event, "preprocessing")
            image = self.preprocessor.load_image(image_path)

            outcomes = self._run_variants(image, workspace, provider, cancel_event)

        if all_failed_preprocessing(outcomes):
            raise PreprocessingFailed(
                "no preprocessing variant succeeded",
                failures={o.strategy.value: o.reason for o in outcomes},
            )

        self._check_cancelled(cancel_event, "extraction")

        texts = successful_texts(outcomes)
        logger.info(f"{len(texts)}/{len(outcomes)} variants produced OCR text")
        if not texts:
            raise RecognitionFailed(
                "no variant produced OCR text",
                failures={o.strategy.value: o.reason for o in outcomes if not o.ok},
            )

        candidate = smart_extract(texts)
        extracted = candidate.vin if candidate else None

        return self.decision_engine.decide(
            extracted,
            expected,
            is_valid_vin(extracted),
            raw_ocr=texts,
            variants_succeeded=len(texts),
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )

    def verify_vehicle(
        self,
        vehicle: VehicleRecord,
        recorder: VerdictRecorder,
        cancel_event: Optional[threading.Event] = None,
    ) -> VerificationVerdict:
        """
        Verify a vehicle record and hand the verdict to the recorder.

        Typed pipeline failures propagate and nothing is recorded.
        """
        verdict = self.verify(vehicle.image_source, vehicle.expected_vin, cancel_event)
        recorder.record_verdict(vehicle.vehicle_id, verdict)
        logger.info(
            f"Recorded vehicle {vehicle.vehicle_id} as "
            f"{verification_status(verdict.recommendation).value}"
        )
        return verdict

    # -------------------------------------------------------------------------
    # Variant fan-out
    # -------------------------------------------------------------------------

    def _run_variants(
        self,
        image: np.ndarray,
        workspace: RunWorkspace,
        provider: OCRProvider,
        cancel_event: threading.Event,
    ) -> List[VariantOutcome]:
        """
        Run every variant in the pool and collect one outcome per strategy,
        in strategy order.

        Raises:
            PipelineCancelled: If cancel_event is set while variants run
        """
        strategies = self.preprocessor.strategies
        concurrency = self.config.concurrency
        started_at: Dict[PreprocessStrategy, float] = {}
        outcomes: Dict[PreprocessStrategy, VariantOutcome] = {}
        abandoned = False

        executor = ThreadPoolExecutor(
            max_workers=max(1, concurrency.max_workers),
            thread_name_prefix="vin-variant",
        )
        try:
            futures: Dict[Future, PreprocessStrategy] = {
                executor.submit(
                    self._process_variant, image, strategy, workspace.path, provider,
                    cancel_event, started_at,
                ): strategy
                for strategy in strategies
            }
            pending = set(futures)

            while pending:
                if cancel_event.is_set():
                    logger.info("Cancellation requested, draining variant workers")
                    raise PipelineCancelled("ocr")

                done, pending = wait(
                    pending, timeout=concurrency.poll_interval, return_when=FIRST_COMPLETED
                )
                for future in done:
                    outcomes[futures[future]] = future.result()

                now = time.monotonic()
                for future in list(pending):
                    strategy = futures[future]
                    started = started_at.get(strategy)
                    if started is not None and now - started > concurrency.variant_timeout:
                        logger.warning(
                            f"Variant {strategy.value} timed out after {concurrency.variant_timeout}s"
                        )
                        outcomes[strategy] = Err(
                            strategy,
                            f"timed out after {concurrency.variant_timeout}s",
                            STAGE_TIMEOUT,
                        )
                        pending.discard(future)
                        future.add_done_callback(lambda _f: workspace.retry_cleanup())
                        abandoned = True
        finally:
            # Timed-out workers are left to finish on their own. Each one
            # retries the workspace removal when it ends
            executor.shutdown(wait=not abandoned, cancel_futures=True)

        return [outcomes[strategy] for strategy in strategies]

    def _process_variant(
        self,
        image: np.ndarray,
        strategy: PreprocessStrategy,
        workdir: Path,
        provider: OCRProvider,
        cancel_event: threading.Event,
        started_at: Dict[PreprocessStrategy, float],
    ) -> VariantOutcome:
        """Preprocess, write, OCR and delete one variant. Never raises."""
        started_at[strategy] = time.monotonic()

        if cancel_event.is_set():
            return Err(strategy, "cancelled", STAGE_CANCELLED)

        try:
            path = self.preprocessor.generate_variant(image, strategy, workdir).path
        except Exception as e:
            logger.warning(f"Variant {strategy.value} preprocessing failed: {e}")
            return Err(strategy, str(e), STAGE_PREPROCESS)

        try:
            if cancel_event.is_set():
                return Err(strategy, "cancelled", STAGE_CANCELLED)
            result = provider.recognize_with_retry(path)
        except Exception as e:
            error = OcrUnavailable(strategy.value, str(e))
            logger.warning(error.message)
            return Err(strategy, error.reason, STAGE_OCR)
        finally:
            path.unlink(missing_ok=True)

        logger.debug(
            f"Variant {strategy.value}: {result.text!r} (confidence={result.confidence:.1f})"
        )
        return Ok(strategy, result.text, result.confidence)

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event, stage: str) -> None:
        if cancel_event.is_set():
            raise PipelineCancelled(stage)
