"""Sample bubble darkness over a rectangular grid of circles.

Every grid-shaped field on a sheet (answers, name, roll number, hall ticket)
is read with the same primitive: compute the pixel center of each bubble from
the normalized geometry, then average the darkness of the pixels inside a
circle around it. Only the geometry and the meaning of rows and columns
differ between fields.

Darkness is (255 - gray) / 255 with gray = (R+G+B)/3, so a fully black
bubble reads 1.0 and a white one 0.0.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional, Sequence

import numpy as np

from .common.config import ABSOLUTE_THRESHOLD, IDENTITY_THRESHOLD, RELATIVE_THRESHOLD
from .raster import RasterImage


class Interpretation(str, Enum):
    OPTION = "option"  # one question per row, options side by side
    LETTER = "letter"  # one character per column, rows A-Z
    DIGIT = "digit"  # one character per column, rows 0-9


@dataclass(frozen=True)
class BubbleGridSpec:
    """Geometry of one bubble field, as fractions of the page size.

    For OPTION grids each cell holds ``options`` bubbles laid out
    horizontally, starting ``option_start`` of the cell width into the cell
    and spread over ``option_span`` of it. ``cells`` limits a grid whose
    last column is only partly printed (e.g. 50 questions in 4 columns of 13).
    """
    start_x: float
    start_y: float
    width: float
    height: float
    columns: int
    rows: int
    interpretation: Interpretation
    radius_ratio: float = 0.3
    options: int = 1
    option_start: float = 0.0
    option_span: float = 1.0
    cells: Optional[int] = None

    @property
    def cell_count(self) -> int:
        if self.cells is not None:
            return min(self.cells, self.columns * self.rows)
        return self.columns * self.rows

    def cell_index(self, col: int, row: int) -> int:
        """Column-major position of a cell: down each column, then across."""
        return col * self.rows + row

    def has_cell(self, col: int, row: int) -> bool:
        return self.cell_index(col, row) < self.cell_count


@dataclass(frozen=True)
class BubbleDecision:
    row: int
    col: int
    darkness: float
    option: int = 0


@dataclass(frozen=True)
class DetectionThresholds:
    answer_absolute: float = ABSOLUTE_THRESHOLD
    answer_relative: float = RELATIVE_THRESHOLD
    identity_absolute: float = IDENTITY_THRESHOLD


DarknessFunction = Callable[[np.ndarray, int, int, int], float]


def bubble_darkness(rgba: np.ndarray, center_x: int, center_y: int, radius: int) -> float:
    """Mean darkness of the pixels within ``radius`` of the center.

    Pixels outside the image are skipped; a circle entirely outside the
    image reads 0.0.
    """
    height, width = rgba.shape[:2]
    x0, x1 = max(center_x - radius, 0), min(center_x + radius, width - 1)
    y0, y1 = max(center_y - radius, 0), min(center_y + radius, height - 1)
    if x0 > x1 or y0 > y1:
        return 0.0

    patch = rgba[y0:y1 + 1, x0:x1 + 1, :3].astype(np.float64)
    dy, dx = np.mgrid[y0 - center_y:y1 - center_y + 1, x0 - center_x:x1 - center_x + 1]
    inside = dx * dx + dy * dy <= radius * radius
    if not inside.any():
        return 0.0

    gray = patch.mean(axis=2)[inside]
    return float(np.mean((255 - gray) / 255))


def cell_size(spec: BubbleGridSpec, width: int, height: int):
    return width * spec.width / spec.columns, height * spec.height / spec.rows


def bubble_radius(spec: BubbleGridSpec, width: int, height: int) -> int:
    cell_w, cell_h = cell_size(spec, width, height)
    return int(math.floor(min(cell_w, cell_h) * spec.radius_ratio))


def bubble_center(spec: BubbleGridSpec, width: int, height: int, col: int, row: int, option: int = 0):
    """Integer pixel center of one bubble."""
    cell_w, cell_h = cell_size(spec, width, height)
    cell_x = width * spec.start_x + col * cell_w
    cell_y = height * spec.start_y + row * cell_h

    # With a single option spanning the cell this is the cell center
    slot = cell_w * spec.option_span / spec.options
    x = cell_x + cell_w * spec.option_start + option * slot + slot / 2
    y = cell_y + cell_h * 0.5
    return int(math.floor(x)), int(math.floor(y))


def scan_grid(image: RasterImage, spec: BubbleGridSpec, darkness: DarknessFunction = bubble_darkness) -> np.ndarray:
    """Sample every bubble of a grid.

    Cells past ``spec.cell_count`` are not printed and read 0.0.

    Returns:
        np.ndarray: Darkness values of shape (columns, rows, options)
    """
    radius = bubble_radius(spec, image.width, image.height)
    values = np.zeros((spec.columns, spec.rows, spec.options), dtype=np.float64)

    for col in range(spec.columns):
        for row in range(spec.rows):
            if not spec.has_cell(col, row):
                continue
            for option in range(spec.options):
                x, y = bubble_center(spec, image.width, image.height, col, row, option)
                values[col, row, option] = darkness(image.rgba, x, y, radius)

    return values


def iter_decisions(values: np.ndarray) -> Iterator[BubbleDecision]:
    for (col, row, option), value in np.ndenumerate(values):
        yield BubbleDecision(row=row, col=col, darkness=float(value), option=option)


def decide_option(darkness: Sequence[float], absolute: float = ABSOLUTE_THRESHOLD,
                  relative: float = RELATIVE_THRESHOLD) -> Optional[int]:
    """Pick the marked option of one question, or None if unattempted.

    The darkest option wins only if it clears the absolute threshold and is
    ``relative`` times darker than the runner-up. Ties keep option order.
    """
    ranked = sorted(range(len(darkness)), key=lambda i: darkness[i], reverse=True)
    if not ranked:
        return None

    darkest = darkness[ranked[0]]
    second = darkness[ranked[1]] if len(ranked) > 1 else 0.0
    if darkest > absolute and darkest > second * relative:
        return ranked[0]
    return None


def decide_symbol(darkness: Sequence[float], absolute: float = IDENTITY_THRESHOLD) -> Optional[int]:
    """Pick the darkest row of an identity column, or None if all are blank."""
    if len(darkness) == 0:
        return None
    best = int(np.argmax(darkness))
    if darkness[best] > absolute:
        return best
    return None
