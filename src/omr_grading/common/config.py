"""Configuration for the OMR grading package.

This module contains the default tuning constants for sheet recognition and
the models for the JSON configuration file used by the command line tool.

The recognition thresholds were chosen empirically against scans of printed
bubble sheets; printer contrast varies, so each one can be overridden with an
environment variable or in the configuration file.

Environment Variables:
    OMR_DEBUG: Set to "1" to log every pipeline step
    OMR_ABSOLUTE_THRESHOLD: Minimum darkness for an answer bubble (0-1)
    OMR_RELATIVE_THRESHOLD: How much darker the chosen bubble must be than the runner-up
    OMR_IDENTITY_THRESHOLD: Minimum darkness for a name/roll number bubble (0-1)
    OMR_MIN_WIDTH, OMR_MIN_HEIGHT: Resolution floor in pixels
    OMR_MIN_SHARPNESS, OMR_MIN_CONTRAST: Quality gate thresholds
    OMR_PDF_SCALE: Upscaling factor used when rendering PDF pages
    OMR_PAGE_TIMEOUT: Seconds allowed for one page
    OMR_MAX_WORKERS: Number of pages processed at the same time
"""
import os
import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


OMR_DEBUG = os.getenv("OMR_DEBUG", "0") == "1"

# Bubble decisions
ABSOLUTE_THRESHOLD = float(os.getenv("OMR_ABSOLUTE_THRESHOLD", "0.35"))
RELATIVE_THRESHOLD = float(os.getenv("OMR_RELATIVE_THRESHOLD", "1.1"))
IDENTITY_THRESHOLD = float(os.getenv("OMR_IDENTITY_THRESHOLD", "0.35"))

# Quality gate
MIN_WIDTH = int(os.getenv("OMR_MIN_WIDTH", "800"))
MIN_HEIGHT = int(os.getenv("OMR_MIN_HEIGHT", "1000"))
MIN_SHARPNESS = float(os.getenv("OMR_MIN_SHARPNESS", "10"))
MIN_CONTRAST = float(os.getenv("OMR_MIN_CONTRAST", "0.2"))
SHARPNESS_STRIDE = 10  # Sample every 10th pixel in x and y
CONTRAST_STRIDE = 20  # Sample every 20th pixel in flat pixel order

# Rasterizing and batch processing
PDF_SCALE = float(os.getenv("OMR_PDF_SCALE", "2.0"))
PAGE_TIMEOUT = float(os.getenv("OMR_PAGE_TIMEOUT", "120"))
MAX_WORKERS = int(os.getenv("OMR_MAX_WORKERS", "1"))

DEFAULT_TEMPLATE = os.getenv("OMR_TEMPLATE", "neet-180")


class ThresholdSettings(BaseModel):
    answer_absolute: float = Field(ABSOLUTE_THRESHOLD, ge=0, le=1)
    answer_relative: float = Field(RELATIVE_THRESHOLD, ge=1)
    identity_absolute: float = Field(IDENTITY_THRESHOLD, ge=0, le=1)
    min_width: int = Field(MIN_WIDTH, gt=0)
    min_height: int = Field(MIN_HEIGHT, gt=0)
    min_sharpness: float = Field(MIN_SHARPNESS, ge=0)
    min_contrast: float = Field(MIN_CONTRAST, ge=0, le=1)


class MarkingSettings(BaseModel):
    correct_marks: float = Field(4.0, gt=0)
    wrong_marks: float = Field(-1.0, le=0)
    unattempted_marks: float = 0.0
    negative_marking: bool = True


class ProcessingSettings(BaseModel):
    pdf_scale: float = Field(PDF_SCALE, gt=0)
    page_timeout: Optional[float] = Field(PAGE_TIMEOUT, gt=0)
    max_workers: int = Field(MAX_WORKERS, ge=1)
    retain_images: bool = False
    ocr_fallback: bool = True


class PathSettings(BaseModel):
    sheets_folder: Optional[str] = None
    answer_key: Optional[str] = None
    output_folder: str = "omr_results"


class OMRSettings(BaseModel):
    """Typed view of the JSON configuration file.

    Example file::

        {
            "template": "neet-180",
            "class_label": "12-A",
            "paths": {"sheets_folder": "./scans", "answer_key": "./key.csv"},
            "marking": {"correct_marks": 4, "wrong_marks": -1},
            "thresholds": {"answer_absolute": 0.4}
        }
    """
    template: str = DEFAULT_TEMPLATE
    class_label: Optional[str] = None  # written to the "class" column of the results
    paths: PathSettings = Field(default_factory=PathSettings)
    marking: MarkingSettings = Field(default_factory=MarkingSettings)
    thresholds: ThresholdSettings = Field(default_factory=ThresholdSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)


def load_config(config_path: str) -> OMRSettings:
    """Load and validate the configuration from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        pydantic.ValidationError: If a value is out of range
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        return OMRSettings.model_validate(json.load(f))
