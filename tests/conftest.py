"""Synthetic bubble sheets drawn with OpenCV for the test suite."""
from typing import Dict, Optional

import cv2
import numpy as np
import pytest

from omr_grading.grid import BubbleGridSpec, bubble_center, bubble_radius
from omr_grading.raster import RasterImage
from omr_grading.templates import SheetTemplate, get_template


SHEET_WIDTH = 1000
SHEET_HEIGHT = 1300
BLACK = (0, 0, 0)


def blank_page(width: int = SHEET_WIDTH, height: int = SHEET_HEIGHT) -> np.ndarray:
    """White RGB page with a striped timing band along the top edge.

    The band gives the page enough edges and contrast to pass the quality
    gate without touching any bubble grid.
    """
    pixels = np.full((height, width, 3), 255, dtype=np.uint8)
    pixels[:40, ::2] = 0
    return pixels


def fill_bubble(pixels: np.ndarray, spec: BubbleGridSpec, col: int, row: int, option: int = 0) -> None:
    height, width = pixels.shape[:2]
    x, y = bubble_center(spec, width, height, col, row, option)
    cv2.circle(pixels, (x, y), bubble_radius(spec, width, height) + 1, BLACK, -1)


def draw_sheet(template: SheetTemplate, answers: Optional[Dict[int, str]] = None, name: str = "",
               roll_number: str = "", hall_ticket: str = "",
               width: int = SHEET_WIDTH, height: int = SHEET_HEIGHT) -> np.ndarray:
    """Fill the bubbles of a template.

    Args:
        answers: 0-based question index -> option letter
        name: Letters fill one column each; a space leaves its column blank
    """
    pixels = blank_page(width, height)
    rows = template.answers.rows
    for question, letter in (answers or {}).items():
        fill_bubble(pixels, template.answers, question // rows, question % rows, ord(letter) - 65)
    for col, char in enumerate(name):
        if char != " ":
            fill_bubble(pixels, template.name_grid, col, ord(char) - 65)
    for col, digit in enumerate(roll_number):
        fill_bubble(pixels, template.roll_grid, col, int(digit))
    for col, digit in enumerate(hall_ticket):
        fill_bubble(pixels, template.hall_ticket_grid, col, int(digit))
    return pixels


def make_sheet(template: SheetTemplate, page_index: int = 0, **kwargs) -> RasterImage:
    return RasterImage.from_array(draw_sheet(template, **kwargs), page_index=page_index)


@pytest.fixture
def neet():
    return get_template("neet-180")


@pytest.fixture
def standard():
    return get_template("standard-50")


@pytest.fixture
def blank_image():
    return RasterImage.from_array(blank_page())
