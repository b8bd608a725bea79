"""Decode the name, roll number and hall ticket grids.

Each identity field is a grid with one bubble column per character. The
darkest bubble of a column is that column's character if it clears the
threshold. Identity grids allow one mark per column, so there is no runner-up
check as there is for answers.
"""
import string
from dataclasses import dataclass

import numpy as np

from .grid import BubbleGridSpec, DetectionThresholds, Interpretation, decide_symbol, scan_grid
from .raster import RasterImage
from .templates import SheetTemplate


UNKNOWN_NAME = "Unknown"
NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class StudentIdentity:
    name: str = UNKNOWN_NAME
    roll_number: str = NOT_AVAILABLE
    hall_ticket: str = NOT_AVAILABLE


def decode_letters(values: np.ndarray, threshold: float) -> str:
    """Decode an A-Z grid of shape (columns, rows[, 1]).

    A blank column becomes a single space between words; consecutive blanks
    collapse and leading/trailing blanks are dropped.
    """
    values = values.reshape(values.shape[0], values.shape[1])
    name = ""
    for column in values:
        row = decide_symbol(column, threshold)
        if row is not None:
            name += string.ascii_uppercase[row]
        elif name and not name.endswith(" "):
            name += " "
    return name.strip()


def decode_digits(values: np.ndarray, threshold: float) -> str:
    """Decode a 0-9 grid; blank columns contribute nothing."""
    values = values.reshape(values.shape[0], values.shape[1])
    digits = ""
    for column in values:
        row = decide_symbol(column, threshold)
        if row is not None:
            digits += str(row)
    return digits


FIELD_DECODERS = {
    Interpretation.LETTER: decode_letters,
    Interpretation.DIGIT: decode_digits,
}


def read_field(image: RasterImage, spec: BubbleGridSpec, threshold: float) -> str:
    """Decode one identity grid with the decoder its interpretation names.

    Raises:
        ValueError: If the grid is not a LETTER or DIGIT field
    """
    try:
        decoder = FIELD_DECODERS[spec.interpretation]
    except KeyError:
        raise ValueError(f"Cannot read a {spec.interpretation.value} grid as an identity field") from None
    return decoder(scan_grid(image, spec), threshold)


def extract_identity(image: RasterImage, template: SheetTemplate,
                     thresholds: DetectionThresholds = DetectionThresholds()) -> StudentIdentity:
    threshold = thresholds.identity_absolute
    name = read_field(image, template.name_grid, threshold)
    roll_number = read_field(image, template.roll_grid, threshold)
    hall_ticket = read_field(image, template.hall_ticket_grid, threshold)

    return StudentIdentity(
        name=name or UNKNOWN_NAME,
        roll_number=roll_number or NOT_AVAILABLE,
        hall_ticket=hall_ticket or NOT_AVAILABLE,
    )


def is_known_roll_number(roll_number: str) -> bool:
    """Whether a roll number can be used as a lookup key."""
    return bool(roll_number) and roll_number != NOT_AVAILABLE
