import dataclasses

import numpy as np
import pytest

from conftest import fill_bubble, make_sheet
from omr_grading.grid import Interpretation
from omr_grading.identity import (
    NOT_AVAILABLE,
    UNKNOWN_NAME,
    StudentIdentity,
    decode_digits,
    decode_letters,
    extract_identity,
    is_known_roll_number,
    read_field,
)
from omr_grading.raster import RasterImage


def letter_grid(text: str, columns: int = 20) -> np.ndarray:
    values = np.zeros((columns, 26, 1))
    for col, char in enumerate(text):
        if char != " ":
            values[col, ord(char) - 65, 0] = 0.9
    return values


@pytest.mark.parametrize("text, expected", [
    ("AB C", "AB C"),
    ("AB   C", "AB C"),  # consecutive blanks collapse
    ("  JOHN", "JOHN"),
    ("", ""),
])
def test_decode_letters(text, expected):
    assert decode_letters(letter_grid(text), threshold=0.35) == expected


def test_faint_letter_counts_as_blank():
    values = letter_grid("AB")
    values[1, 1, 0] = 0.3

    assert decode_letters(values, threshold=0.35) == "A"


def test_decode_digits_skips_blank_columns():
    values = np.zeros((5, 10))
    values[0, 4] = 0.8
    values[2, 0] = 0.8
    values[4, 9] = 0.8

    assert decode_digits(values, threshold=0.35) == "409"


def test_extract_identity_from_sheet(neet):
    image = make_sheet(neet, name="AB C", roll_number="1234567890", hall_ticket="7654321")

    identity = extract_identity(image, neet)

    assert identity == StudentIdentity(name="AB C", roll_number="1234567890", hall_ticket="7654321")


def test_blank_identity_uses_defaults(neet, blank_image):
    identity = extract_identity(blank_image, neet)

    assert identity.name == UNKNOWN_NAME == "Unknown"
    assert identity.roll_number == NOT_AVAILABLE == "N/A"
    assert identity.hall_ticket == "N/A"


def test_is_known_roll_number():
    assert is_known_roll_number("042")
    assert not is_known_roll_number("N/A")
    assert not is_known_roll_number("")


def test_read_field_follows_the_grid_interpretation(neet):
    image = make_sheet(neet, roll_number="42")
    as_letters = dataclasses.replace(neet.roll_grid, interpretation=Interpretation.LETTER, rows=26)

    assert read_field(image, neet.roll_grid, 0.35) == "42"
    assert not any(char.isdigit() for char in read_field(image, as_letters, 0.35))
    with pytest.raises(ValueError, match="option"):
        read_field(image, dataclasses.replace(neet.roll_grid, interpretation=Interpretation.OPTION), 0.35)


def test_digit_interpreted_name_grid_reads_digits(neet, blank_image):
    pixels = blank_image.rgba[:, :, :3].copy()
    spec = dataclasses.replace(neet.name_grid, interpretation=Interpretation.DIGIT, rows=10)
    fill_bubble(pixels, spec, 0, 7)
    fill_bubble(pixels, spec, 1, 3)

    assert read_field(RasterImage.from_array(pixels), spec, 0.35) == "73"
