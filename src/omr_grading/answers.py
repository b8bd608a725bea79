"""Read the marked option of every question from the answer grid."""
from typing import Optional, Tuple

import numpy as np

from .grid import DetectionThresholds, decide_option, scan_grid
from .raster import RasterImage
from .templates import SheetTemplate


def decode_answers(values: np.ndarray, thresholds: DetectionThresholds = DetectionThresholds(),
                   question_count: Optional[int] = None) -> Tuple[str, ...]:
    """Turn a (columns, rows, options) darkness array into option letters.

    Questions are numbered down each column, then across columns, and the
    record is cut to ``question_count`` when the last column is partial.
    Unattempted or ambiguous questions are "".
    """
    columns, rows, _ = values.shape
    answers = []
    for col in range(columns):
        for row in range(rows):
            choice = decide_option(values[col, row], thresholds.answer_absolute, thresholds.answer_relative)
            answers.append("" if choice is None else chr(65 + choice))
    if question_count is not None:
        answers = answers[:question_count]
    return tuple(answers)


def detect_answers(image: RasterImage, template: SheetTemplate,
                   thresholds: DetectionThresholds = DetectionThresholds()) -> Tuple[str, ...]:
    """One entry per question of the template, "" when unattempted."""
    return decode_answers(scan_grid(image, template.answers), thresholds, template.question_count)


def count_attempted(answers) -> int:
    return sum(1 for answer in answers if answer)
