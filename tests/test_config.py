import json

import pytest
from pydantic import ValidationError

from omr_grading.common.config import OMRSettings, load_config


def test_load_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "template": "standard-50",
        "class_label": "10-B",
        "paths": {"sheets_folder": "./scans", "answer_key": "./key.csv"},
        "marking": {"correct_marks": 1, "wrong_marks": -0.25},
        "processing": {"max_workers": 4, "retain_images": True},
    }))

    settings = load_config(path)

    assert settings.template == "standard-50"
    assert settings.class_label == "10-B"
    assert settings.paths.sheets_folder == "./scans"
    assert settings.paths.output_folder == "omr_results"
    assert settings.marking.wrong_marks == -0.25
    assert settings.marking.negative_marking
    assert settings.processing.max_workers == 4
    assert settings.processing.retain_images
    assert settings.thresholds.answer_relative == pytest.approx(1.1)


def test_defaults():
    settings = OMRSettings()

    assert settings.thresholds.answer_absolute == pytest.approx(0.35)
    assert settings.thresholds.min_width == 800
    assert settings.thresholds.min_height == 1000
    assert settings.processing.pdf_scale == 2.0
    assert settings.processing.ocr_fallback
    assert settings.class_label is None


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.json")


@pytest.mark.parametrize("document", [
    {"thresholds": {"answer_absolute": 1.5}},
    {"thresholds": {"answer_relative": 0.9}},
    {"marking": {"wrong_marks": 2}},
    {"processing": {"max_workers": 0}},
])
def test_out_of_range_values_are_rejected(tmp_path, document):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(document))

    with pytest.raises(ValidationError):
        load_config(path)
