"""Draw the sampled bubbles on top of a page for visual checking.

The overlay makes template misalignment obvious at a glance: every sampled
bubble gets a small box, red when its darkness clears the threshold and gray
otherwise, and each grid gets a box around its whole region.
"""
import cv2
import numpy as np

from .grid import BubbleGridSpec, DetectionThresholds, bubble_center, bubble_radius, iter_decisions, scan_grid
from .raster import RasterImage
from .templates import SheetTemplate


OVERLAY_COLOR = (130, 130, 130)  # Color for unmarked bubble boxes (gray)
MARKED_COLOR = (0, 0, 255)  # Color for marked bubbles (red in BGR format)
REGION_COLOR = (0, 0, 255)


def draw_grid(overlay: np.ndarray, image: RasterImage, spec: BubbleGridSpec, threshold: float) -> None:
    """Draw one grid onto a BGR overlay in place."""
    width, height = image.width, image.height
    left = int(width * spec.start_x)
    top = int(height * spec.start_y)
    cv2.rectangle(overlay, (left, top),
                  (left + int(width * spec.width), top + int(height * spec.height)), REGION_COLOR, 2)

    radius = max(bubble_radius(spec, width, height), 1)
    for decision in iter_decisions(scan_grid(image, spec)):
        if not spec.has_cell(decision.col, decision.row):
            continue
        x, y = bubble_center(spec, width, height, decision.col, decision.row, decision.option)
        color = MARKED_COLOR if decision.darkness > threshold else OVERLAY_COLOR
        cv2.rectangle(overlay, (x - radius, y - radius), (x + radius, y + radius), color, 1)


def render_overlay(image: RasterImage, template: SheetTemplate,
                   thresholds: DetectionThresholds = DetectionThresholds()) -> np.ndarray:
    """Return a BGR copy of the page with all template grids drawn on it."""
    overlay = image.to_bgr()
    draw_grid(overlay, image, template.answers, thresholds.answer_absolute)
    for spec in (template.name_grid, template.roll_grid, template.hall_ticket_grid):
        draw_grid(overlay, image, spec, thresholds.identity_absolute)
    return overlay
