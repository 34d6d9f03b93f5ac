"""
Tests for the command line interface.
"""

import json
from unittest.mock import patch

import pytest

from vin_verify.cli import main
from vin_verify.core.errors import AcquisitionFailed, RecognitionFailed
from vin_verify.pipeline import DecisionEngine


class TestValidateCommand:
    """Tests for `vin-verify validate`."""

    def test_valid(self, capsys):
        assert main(["validate", "1HGBH41JXMN109186"]) == 0
        out = capsys.readouterr().out
        assert "Valid check digit: YES" in out

    def test_invalid(self, capsys):
        assert main(["validate", "1HGBH41JXMN109187"]) == 1
        out = capsys.readouterr().out
        assert "Expected check digit: 1" in out

    def test_json(self, capsys):
        assert main(["validate", "2HGFA1F54AH570372", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["is_fully_valid"] is True


class TestExtractCommand:
    """Tests for `vin-verify extract`."""

    def test_label_text(self, capsys):
        assert main(["extract", "VEHICLE IDENTIFICATION NUMBER 5TFDY5F17KX901234"]) == 0
        assert "Extracted VIN: 5TFDY5F17KX901234" in capsys.readouterr().out

    def test_nothing_found(self, capsys):
        assert main(["extract", "ABC123"]) == 1
        assert "NONE" in capsys.readouterr().out

    def test_from_file(self, tmp_path, capsys):
        path = tmp_path / "ocr.txt"
        path.write_text("PASSENGER CAR\nV.I.N. 1HGBH41JXMN109186\n")
        assert main(["extract", "--file", str(path), "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["candidate"]["vin"] == "1HGBH41JXMN109186"
        assert data["contains_label_words"] is True

    def test_missing_file(self, tmp_path):
        assert main(["extract", "--file", str(tmp_path / "nope.txt")]) == 1

    def test_all_candidates(self, capsys):
        assert main(["extract", "AB1HGBH41JXMN109187", "--all"]) == 0
        out = capsys.readouterr().out
        assert out.count("candidate:") == 3


class TestVerifyCommand:
    """Tests for `vin-verify verify` with the pipeline mocked."""

    def test_verdict_printed(self, capsys):
        verdict = DecisionEngine().decide("2HGFA1F54AH570372", "2HGFA1F54AH570372", True)
        with patch("vin_verify.pipeline.VINVerificationPipeline.verify", return_value=verdict):
            code = main(["verify", "plate.jpg", "2HGFA1F54AH570372", "--json"])
        assert code == 0
        assert json.loads(capsys.readouterr().out)["recommendation"] == "auto_approve"

    def test_pipeline_error_exit_code(self, capsys):
        error = AcquisitionFailed("file not found", source="plate.jpg")
        with patch("vin_verify.pipeline.VINVerificationPipeline.verify", side_effect=error):
            code = main(["verify", "plate.jpg", "2HGFA1F54AH570372"])
        assert code == 2
        assert "ACQUISITION_FAILED" in capsys.readouterr().err

    def test_recognition_failure_exit_code(self, capsys):
        error = RecognitionFailed("no variant produced OCR text", failures={"standard": "tesseract missing"})
        with patch("vin_verify.pipeline.VINVerificationPipeline.verify", side_effect=error):
            code = main(["verify", "plate.jpg", "2HGFA1F54AH570372"])
        assert code == 2
        assert "RECOGNITION_FAILED" in capsys.readouterr().err

    def test_policy_flag(self):
        verdict = DecisionEngine().decide(None, "2HGFA1F54AH570372", False)
        with patch("vin_verify.pipeline.VINVerificationPipeline.verify", return_value=verdict):
            with patch("vin_verify.pipeline.VINVerificationPipeline.__init__", return_value=None) as init:
                main(["verify", "plate.jpg", "2HGFA1F54AH570372", "--policy", "strict"])
        assert init.call_args.kwargs["config"].decision.policy == "strict"


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()


def test_version():
    with pytest.raises(SystemExit) as exc_info:
        main(["--version"])
    assert exc_info.value.code == 0
