"""
Tests for VIN Verification Pipeline
===================================

End-to-end runs with real preprocessing and a scripted OCR provider that
answers per variant. Covers degradation, fatal errors, cancellation,
variant timeouts, workspace cleanup and the recorder seam.

Run with: pytest tests/test_vin_pipeline.py -v
"""

import tempfile
import threading
import time
from unittest.mock import Mock, patch

import cv2
import numpy as np
import pytest
import pytesseract
import requests

from vin_verify.config import PipelineConfig
from vin_verify.core.errors import (
    AcquisitionFailed,
    ConfigurationError,
    InvalidInput,
    PipelineCancelled,
    PreprocessingFailed,
    RecognitionFailed,
)
from vin_verify.pipeline import (
    ConfidenceTier,
    Recommendation,
    VehicleRecord,
    VerdictRecorder,
    VINVerificationPipeline,
    normalize_expected_vin,
)
from vin_verify.preprocessing import PreprocessStrategy
from vin_verify.providers import (
    OCRProvider,
    OCRProviderError,
    OCRResult,
    ProviderConfig,
    TesseractOCRConfig,
    TesseractOCRProvider,
)


HONDA_VIN = "2HGFA1F54AH570372"
HONDA_LABEL = "MFD. BY HONDA OF CANADA MFG. V.I.N. 2HGFA1F54AH570372 PASSENGER CAR"
TOYOTA_VIN = "5TFDY5F17KX901234"
TOYOTA_LABEL = "VEHICLE IDENTIFICATION NUMBER 5TFDY5F17KX901234"


class ScriptedProvider(OCRProvider):
    """
    OCR provider returning canned text per variant.

    The variant is recognised from the file name the preprocessor writes.
    A script value may be a string, an exception instance to raise, or a
    callable taking the image path.
    """

    def __init__(self, script=None, default=""):
        self.config = ProviderConfig()
        self.script = script or {}
        self.default = default
        self.calls = []
        self._initialized = True

    @property
    def name(self):
        return "Scripted"

    @property
    def is_available(self):
        return True

    def initialize(self):
        pass

    def recognize(self, image, **kwargs):
        strategy = _strategy_of(image)
        self.calls.append(strategy)
        action = self.script.get(strategy, self.default)
        if isinstance(action, Exception):
            raise action
        if callable(action):
            action = action(image)
        return OCRResult(text=action, confidence=80.0, provider=self.name)


def _strategy_of(path):
    name = path.name
    for strategy in PreprocessStrategy:
        if name.startswith(f"variant_{strategy.value}_"):
            return strategy
    raise AssertionError(f"unexpected variant file {name}")


def _plate():
    img = np.full((120, 480, 3), 210, dtype=np.uint8)
    cv2.putText(img, HONDA_VIN, (10, 70), cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 0, 0), 2)
    return img


# =============================================================================
# TEST FIXTURES
# =============================================================================

@pytest.fixture
def workspace_root(tmp_path, monkeypatch):
    """Redirect run workspaces into a directory the test can inspect."""
    root = tmp_path / "tmp"
    root.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(root))
    return root


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "plate.png"
    cv2.imwrite(str(path), _plate())
    return path


@pytest.fixture
def config():
    config = PipelineConfig()
    config.concurrency.poll_interval = 0.01
    return config


def make_pipeline(config, provider):
    return VINVerificationPipeline(config=config, provider=provider)


# =============================================================================
# EXPECTED VIN NORMALIZATION
# =============================================================================

class TestNormalizeExpectedVIN:
    """Tests for operator input normalization."""

    def test_strips_whitespace_and_uppercases(self):
        assert normalize_expected_vin(" 2hgfa1f54 ah570372\n") == HONDA_VIN

    @pytest.mark.parametrize("value", [None, "", "   ", "2HGFA1F54AH57", "2HGFA1F54AH5703721", 12345])
    def test_rejected(self, value):
        with pytest.raises(InvalidInput):
            normalize_expected_vin(value)

    def test_non_vin_alphabet_accepted(self):
        """Structure outside the alphabet is warned about, not rejected."""
        assert normalize_expected_vin("2HGFA1F54AH57O372") == "2HGFA1F54AH57O372"


# =============================================================================
# END TO END
# =============================================================================

class TestVerify:
    """Full runs against a local image."""

    def test_label_on_one_variant_approved(self, config, image_file, workspace_root):
        provider = ScriptedProvider({PreprocessStrategy.STANDARD: HONDA_LABEL}, default="#@!")
        verdict = make_pipeline(config, provider).verify(str(image_file), HONDA_VIN)

        assert verdict.extracted_vin == HONDA_VIN
        assert verdict.similarity == 100
        assert verdict.is_valid
        assert verdict.recommendation == Recommendation.AUTO_APPROVE
        assert verdict.confidence == ConfidenceTier.HIGH
        assert verdict.variants_succeeded == 5
        assert verdict.processing_time_ms > 0

    def test_every_variant_recognised(self, config, image_file, workspace_root):
        provider = ScriptedProvider(default=HONDA_VIN)
        make_pipeline(config, provider).verify(image_file, HONDA_VIN)
        assert sorted(provider.calls, key=lambda s: s.value) == sorted(
            PreprocessStrategy, key=lambda s: s.value
        )

    def test_each_worker_uses_generate_variant(self, config, image_file, workspace_root):
        pipeline = make_pipeline(config, ScriptedProvider(default=HONDA_LABEL))
        with patch.object(
            pipeline.preprocessor, "generate_variant", wraps=pipeline.preprocessor.generate_variant
        ) as generate:
            verdict = pipeline.verify(image_file, HONDA_VIN)

        assert generate.call_count == 5
        assert {c.args[1] for c in generate.call_args_list} == set(PreprocessStrategy)
        assert verdict.recommendation == Recommendation.AUTO_APPROVE

    def test_raw_ocr_in_variant_order(self, config, image_file, workspace_root):
        script = {s: f"text-{s.value}" for s in PreprocessStrategy}
        verdict = make_pipeline(config, ScriptedProvider(script)).verify(image_file, HONDA_VIN)
        assert verdict.raw_ocr == [f"text-{s.value}" for s in PreprocessStrategy]

    def test_bad_checksum_exact_match_approved(self, config, image_file, workspace_root):
        provider = ScriptedProvider({PreprocessStrategy.INVERTED: TOYOTA_LABEL}, default="#@!")
        verdict = make_pipeline(config, provider).verify(image_file, TOYOTA_VIN)

        assert verdict.extracted_vin == TOYOTA_VIN
        assert not verdict.is_valid
        assert verdict.recommendation == Recommendation.AUTO_APPROVE
        assert verdict.confidence == ConfidenceTier.HIGH

    def test_expected_vin_normalized(self, config, image_file, workspace_root):
        provider = ScriptedProvider(default=HONDA_VIN)
        verdict = make_pipeline(config, provider).verify(image_file, "2hgfa1f54ah570372 ")
        assert verdict.expected_vin == HONDA_VIN
        assert verdict.similarity == 100

    def test_mismatch_rejected(self, config, image_file, workspace_root):
        provider = ScriptedProvider(default="SAL1A2A40SA606662")
        verdict = make_pipeline(config, provider).verify(image_file, HONDA_VIN)
        assert verdict.recommendation == Recommendation.REJECT
        assert verdict.confidence == ConfidenceTier.LOW

    def test_no_candidate_goes_to_review(self, config, image_file, workspace_root):
        provider = ScriptedProvider(default="ABC123")
        verdict = make_pipeline(config, provider).verify(image_file, HONDA_VIN)

        assert verdict.extracted_vin is None
        assert verdict.similarity == 0
        assert verdict.recommendation == Recommendation.MANUAL_REVIEW
        assert "Extracted: NONE" in verdict.notes

    def test_strict_policy_from_config(self, config, image_file, workspace_root):
        config.decision.policy = "strict"
        provider = ScriptedProvider(default="2HGFA1F54AH570378")
        verdict = make_pipeline(config, provider).verify(image_file, HONDA_VIN)
        assert verdict.similarity == 94
        assert verdict.recommendation == Recommendation.MANUAL_REVIEW

    def test_remote_image(self, config, workspace_root):
        _, encoded = cv2.imencode(".jpg", _plate())
        response = Mock(spec=requests.Response)
        response.content = encoded.tobytes()
        response.headers = {"Content-Type": "image/jpeg"}
        response.raise_for_status.return_value = None

        provider = ScriptedProvider(default=HONDA_LABEL)
        with patch("vin_verify.acquisition.image_source.requests.get", return_value=response):
            verdict = make_pipeline(config, provider).verify(
                "https://cdn.example.com/vin.jpg", HONDA_VIN
            )

        assert verdict.recommendation == Recommendation.AUTO_APPROVE
        assert list(workspace_root.iterdir()) == []


# =============================================================================
# DEGRADATION
# =============================================================================

class TestVariantFailures:
    """Failed variants are dropped, the run continues."""

    def test_ocr_error_on_one_variant(self, config, image_file, workspace_root):
        provider = ScriptedProvider(
            {
                PreprocessStrategy.STANDARD: OCRProviderError("engine crashed", provider="Scripted"),
                PreprocessStrategy.UPSCALED: HONDA_LABEL,
            },
            default="",
        )
        verdict = make_pipeline(config, provider).verify(image_file, HONDA_VIN)

        assert verdict.variants_succeeded == 4
        assert len(verdict.raw_ocr) == 4
        assert verdict.extracted_vin == HONDA_VIN

    def test_preprocessing_failure_on_one_variant(self, config, image_file, workspace_root):
        pipeline = make_pipeline(config, ScriptedProvider(default=HONDA_LABEL))
        pipeline.preprocessor._recipes[PreprocessStrategy.AGGRESSIVE] = Mock(
            side_effect=RuntimeError("bad kernel")
        )
        verdict = pipeline.verify(image_file, HONDA_VIN)
        assert verdict.variants_succeeded == 4
        assert verdict.recommendation == Recommendation.AUTO_APPROVE

    def test_variant_timeout(self, config, image_file, workspace_root):
        config.concurrency.variant_timeout = 0.2
        release = threading.Event()

        def stall(_path):
            release.wait(5)
            return HONDA_LABEL

        provider = ScriptedProvider({PreprocessStrategy.INVERTED: stall}, default=HONDA_LABEL)
        try:
            verdict = make_pipeline(config, provider).verify(image_file, HONDA_VIN)
        finally:
            release.set()

        assert verdict.variants_succeeded == 4
        assert verdict.recommendation == Recommendation.AUTO_APPROVE


# =============================================================================
# FATAL ERRORS
# =============================================================================

class TestFatalErrors:
    """Errors that end the run."""

    def test_invalid_expected_vin(self, config, image_file):
        provider = ScriptedProvider()
        with pytest.raises(InvalidInput):
            make_pipeline(config, provider).verify(image_file, "NOT-A-VIN")
        assert provider.calls == []

    def test_missing_image(self, config, tmp_path, workspace_root):
        with pytest.raises(AcquisitionFailed):
            make_pipeline(config, ScriptedProvider()).verify(tmp_path / "missing.jpg", HONDA_VIN)
        assert list(workspace_root.iterdir()) == []

    def test_unreachable_url(self, config, workspace_root):
        provider = ScriptedProvider(default=HONDA_VIN)
        with patch(
            "vin_verify.acquisition.image_source.requests.get",
            side_effect=requests.ConnectionError("no route to host"),
        ):
            with pytest.raises(AcquisitionFailed) as exc_info:
                make_pipeline(config, provider).verify("https://cdn.example.com/vin.jpg", HONDA_VIN)

        assert exc_info.value.source == "https://cdn.example.com/vin.jpg"
        assert provider.calls == []
        assert list(workspace_root.iterdir()) == []

    def test_empty_source(self, config):
        with pytest.raises(InvalidInput):
            make_pipeline(config, ScriptedProvider()).verify("  ", HONDA_VIN)

    def test_undecodable_image(self, config, tmp_path, workspace_root):
        path = tmp_path / "broken.jpg"
        path.write_bytes(b"definitely not a jpeg")
        with pytest.raises(PreprocessingFailed):
            make_pipeline(config, ScriptedProvider()).verify(path, HONDA_VIN)
        assert list(workspace_root.iterdir()) == []

    def test_all_preprocessing_failed(self, config, image_file, workspace_root):
        provider = ScriptedProvider()
        pipeline = make_pipeline(config, provider)
        with patch.object(pipeline.preprocessor, "process", side_effect=RuntimeError("boom")):
            with pytest.raises(PreprocessingFailed) as exc_info:
                pipeline.verify(image_file, HONDA_VIN)

        assert set(exc_info.value.failures) == {s.value for s in PreprocessStrategy}
        assert provider.calls == []

    def test_all_ocr_failing(self, config, image_file, workspace_root):
        provider = ScriptedProvider(default=OCRProviderError("engine crashed", provider="Scripted"))
        with pytest.raises(RecognitionFailed) as exc_info:
            make_pipeline(config, provider).verify(image_file, HONDA_VIN)

        assert exc_info.value.error_code == "RECOGNITION_FAILED"
        assert set(exc_info.value.failures) == {s.value for s in PreprocessStrategy}
        assert list(workspace_root.iterdir()) == []

    def test_tesseract_missing(self, config, image_file, workspace_root):
        provider = TesseractOCRProvider(TesseractOCRConfig(tesseract_cmd="/nonexistent/tesseract"))
        with patch(
            "pytesseract.get_tesseract_version",
            side_effect=pytesseract.TesseractNotFoundError(),
        ):
            with pytest.raises(RecognitionFailed) as exc_info:
                make_pipeline(config, provider).verify(image_file, HONDA_VIN)

        assert set(exc_info.value.failures) == {s.value for s in PreprocessStrategy}
        assert list(workspace_root.iterdir()) == []

    def test_timeouts_on_every_variant(self, config, image_file, workspace_root):
        config.concurrency.variant_timeout = 0.1
        release = threading.Event()

        def stall(_path):
            release.wait(5)
            return HONDA_LABEL

        try:
            with pytest.raises(RecognitionFailed) as exc_info:
                make_pipeline(config, ScriptedProvider(default=stall)).verify(image_file, HONDA_VIN)
        finally:
            release.set()

        assert all("timed out" in reason for reason in exc_info.value.failures.values())

    def test_unknown_provider_in_config(self, config, image_file):
        config.ocr.provider = "deepseek"
        with pytest.raises(ConfigurationError) as exc_info:
            VINVerificationPipeline(config=config).verify(image_file, HONDA_VIN)
        assert exc_info.value.config_key == "ocr.provider"


# =============================================================================
# CANCELLATION AND CLEANUP
# =============================================================================

class TestCancellation:
    """Caller-initiated cancellation."""

    def test_cancelled_before_start(self, config, image_file, workspace_root):
        cancel = threading.Event()
        cancel.set()
        provider = ScriptedProvider(default=HONDA_VIN)

        with pytest.raises(PipelineCancelled) as exc_info:
            make_pipeline(config, provider).verify(image_file, HONDA_VIN, cancel_event=cancel)

        assert exc_info.value.stage == "acquisition"
        assert provider.calls == []
        assert list(workspace_root.iterdir()) == []

    def test_cancelled_during_ocr(self, config, image_file, workspace_root):
        cancel = threading.Event()

        def cancel_and_answer(_path):
            cancel.set()
            return HONDA_VIN

        provider = ScriptedProvider(default=cancel_and_answer)
        with pytest.raises(PipelineCancelled):
            make_pipeline(config, provider).verify(image_file, HONDA_VIN, cancel_event=cancel)

        assert list(workspace_root.iterdir()) == []


class TestWorkspaceCleanup:
    """Run workspaces never outlive the run."""

    def test_removed_after_success(self, config, image_file, workspace_root):
        make_pipeline(config, ScriptedProvider(default=HONDA_VIN)).verify(image_file, HONDA_VIN)
        assert list(workspace_root.iterdir()) == []

    def test_variant_files_deleted_after_ocr(self, config, image_file, workspace_root):
        seen = []

        def remember(path):
            seen.append(path)
            return HONDA_VIN

        make_pipeline(config, ScriptedProvider(default=remember)).verify(image_file, HONDA_VIN)
        assert len(seen) == 5
        assert not any(p.exists() for p in seen)

    def test_prefix_from_config(self, config, image_file, workspace_root):
        config.acquisition.temp_prefix = "vin_run_"
        names = []

        def remember_dir(path):
            names.append(path.parent.name)
            return HONDA_VIN

        make_pipeline(config, ScriptedProvider(default=remember_dir)).verify(image_file, HONDA_VIN)
        assert all(name.startswith("vin_run_") for name in names)

    def test_concurrent_runs_use_separate_workspaces(self, config, image_file, workspace_root):
        dirs = []
        lock = threading.Lock()

        def remember_dir(path):
            with lock:
                dirs.append(path.parent)
            return HONDA_VIN

        pipeline = make_pipeline(config, ScriptedProvider(default=remember_dir))
        threads = [
            threading.Thread(target=pipeline.verify, args=(image_file, HONDA_VIN))
            for _ in range(2)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(dirs)) == 2
        assert list(workspace_root.iterdir()) == []

    def test_straggler_retries_failed_removal(self, config, image_file, workspace_root, monkeypatch, caplog):
        """A timed-out worker still busy during removal finishes it when it ends."""
        config.concurrency.variant_timeout = 0.2
        release = threading.Event()
        real_cleanup = tempfile.TemporaryDirectory.cleanup
        attempts = []

        def flaky_cleanup(tmp):
            attempts.append(tmp.name)
            if len(attempts) == 1:
                raise OSError(39, "Directory not empty")
            real_cleanup(tmp)

        def stall(_path):
            release.wait(5)
            return HONDA_LABEL

        monkeypatch.setattr(tempfile.TemporaryDirectory, "cleanup", flaky_cleanup)
        provider = ScriptedProvider({PreprocessStrategy.INVERTED: stall}, default=HONDA_LABEL)
        try:
            verdict = make_pipeline(config, provider).verify(image_file, HONDA_VIN)
            assert verdict.recommendation == Recommendation.AUTO_APPROVE
            assert len(list(workspace_root.iterdir())) == 1
            assert "Could not remove run workspace" in caplog.text
        finally:
            release.set()

        deadline = time.monotonic() + 5
        while list(workspace_root.iterdir()) and time.monotonic() < deadline:
            time.sleep(0.01)
        assert list(workspace_root.iterdir()) == []
        assert len(attempts) == 2


# =============================================================================
# RECORDER SEAM
# =============================================================================

class TestVerifyVehicle:
    """Tests for recording verdicts against vehicle records."""

    def test_records_verdict_once(self, config, image_file, workspace_root):
        recorder = Mock(spec=VerdictRecorder)
        vehicle = VehicleRecord(vehicle_id=42, image_source=str(image_file), expected_vin=HONDA_VIN)

        verdict = make_pipeline(config, ScriptedProvider(default=HONDA_LABEL)).verify_vehicle(
            vehicle, recorder
        )

        recorder.record_verdict.assert_called_once_with(42, verdict)
        assert verdict.recommendation == Recommendation.AUTO_APPROVE

    def test_nothing_recorded_on_failure(self, config, tmp_path, workspace_root):
        recorder = Mock(spec=VerdictRecorder)
        vehicle = VehicleRecord(vehicle_id="veh-7", image_source=str(tmp_path / "gone.jpg"), expected_vin=HONDA_VIN)

        with pytest.raises(AcquisitionFailed):
            make_pipeline(config, ScriptedProvider()).verify_vehicle(vehicle, recorder)

        recorder.record_verdict.assert_not_called()
