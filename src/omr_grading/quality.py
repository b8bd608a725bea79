"""Decide whether a scanned sheet is good enough to score.

Two coarse global metrics are computed on a sparse sample of the page:

- sharpness: mean squared gradient (right and down neighbour differences)
  over every 10th pixel in both directions
- contrast: spread between the lightest and darkest of every 20th pixel

A sheet is accepted only if it meets the resolution floor and both metrics
clear their thresholds. The reported failure is the first violated condition
in the order resolution, sharpness, contrast.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .common.config import (
    CONTRAST_STRIDE,
    MIN_CONTRAST,
    MIN_HEIGHT,
    MIN_SHARPNESS,
    MIN_WIDTH,
    SHARPNESS_STRIDE,
)
from .errors import LowQualityError
from .raster import RasterImage


class FailureReason(str, Enum):
    LOW_RESOLUTION = "Low resolution image"
    BLURRED = "Blurred or low quality image"
    POOR_CONTRAST = "Poor contrast"
    NO_ANSWERS = "No answers detected"
    TIMEOUT = "Processing timeout"
    PROCESSING_FAILED = "Processing failed"


@dataclass(frozen=True)
class QualityThresholds:
    min_width: int = MIN_WIDTH
    min_height: int = MIN_HEIGHT
    min_sharpness: float = MIN_SHARPNESS
    min_contrast: float = MIN_CONTRAST


@dataclass(frozen=True)
class QualityVerdict:
    is_valid: bool
    sharpness: float
    contrast: float
    width: int
    height: int
    failure_reason: Optional[FailureReason] = None

    def raise_if_invalid(self) -> None:
        """Raise LowQualityError carrying the failure reason."""
        if not self.is_valid:
            raise LowQualityError(self.failure_reason.value)


def calculate_sharpness(image: RasterImage, stride: int = SHARPNESS_STRIDE) -> float:
    gray = image.grayscale()
    ys = np.arange(1, image.height - 1, stride)
    xs = np.arange(1, image.width - 1, stride)
    if ys.size == 0 or xs.size == 0:
        return 0.0

    center = gray[np.ix_(ys, xs)]
    right = gray[np.ix_(ys, xs + 1)]
    down = gray[np.ix_(ys + 1, xs)]
    laplacian = np.abs(right - center) + np.abs(down - center)
    return float(np.mean(laplacian ** 2))


def calculate_contrast(image: RasterImage, stride: int = CONTRAST_STRIDE) -> float:
    pixels = image.rgba.reshape(-1, 4)[::stride, :3]
    if pixels.size == 0:
        return 0.0
    gray = pixels.astype(np.float64).mean(axis=1)
    return float((gray.max() - gray.min()) / 255)


def verdict_for(width: int, height: int, sharpness: float, contrast: float,
                thresholds: QualityThresholds = QualityThresholds()) -> QualityVerdict:
    """Classify already-measured metrics."""
    has_min_resolution = width >= thresholds.min_width and height >= thresholds.min_height

    reason = None
    if not has_min_resolution:
        reason = FailureReason.LOW_RESOLUTION
    elif sharpness <= thresholds.min_sharpness:
        reason = FailureReason.BLURRED
    elif contrast <= thresholds.min_contrast:
        reason = FailureReason.POOR_CONTRAST

    return QualityVerdict(
        is_valid=reason is None,
        sharpness=sharpness,
        contrast=contrast,
        width=width,
        height=height,
        failure_reason=reason,
    )


def assess_quality(image: RasterImage, thresholds: QualityThresholds = QualityThresholds()) -> QualityVerdict:
    """Measure a page and return its quality verdict."""
    return verdict_for(
        image.width,
        image.height,
        calculate_sharpness(image),
        calculate_contrast(image),
        thresholds,
    )
