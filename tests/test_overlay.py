import numpy as np

from conftest import make_sheet
from omr_grading.grid import DetectionThresholds, bubble_center, bubble_radius
from omr_grading.overlay import MARKED_COLOR, OVERLAY_COLOR, render_overlay


def test_overlay_marks_filled_bubbles(standard):
    image = make_sheet(standard, answers={0: "B"}, roll_number="5")

    overlay = render_overlay(image, standard)

    assert overlay.shape == (image.height, image.width, 3)
    # the page itself is left untouched
    assert image.rgba[0, 1, 0] == 255

    x, y = bubble_center(standard.answers, image.width, image.height, 0, 0, 1)
    r = bubble_radius(standard.answers, image.width, image.height)
    assert tuple(overlay[y - r, x]) == MARKED_COLOR

    x, y = bubble_center(standard.answers, image.width, image.height, 0, 0, 2)
    assert tuple(overlay[y - r, x]) == OVERLAY_COLOR


def test_blank_page_has_no_marked_bubbles(standard, blank_image):
    overlay = render_overlay(blank_image, standard)

    x, y = bubble_center(standard.roll_grid, blank_image.width, blank_image.height, 0, 0)
    r = bubble_radius(standard.roll_grid, blank_image.width, blank_image.height)
    assert tuple(overlay[y - r, x]) == OVERLAY_COLOR
    assert not np.array_equal(overlay, blank_image.to_bgr())


def test_unprinted_cells_of_the_last_column_are_not_boxed(standard, blank_image):
    overlay = render_overlay(blank_image, standard)
    r = bubble_radius(standard.answers, blank_image.width, blank_image.height)

    x, y = bubble_center(standard.answers, blank_image.width, blank_image.height, 3, 10)
    assert tuple(overlay[y - r, x]) == OVERLAY_COLOR
    x, y = bubble_center(standard.answers, blank_image.width, blank_image.height, 3, 12)
    assert tuple(overlay[y - r, x]) == (255, 255, 255)


def test_overlay_follows_the_given_thresholds(standard):
    image = make_sheet(standard, answers={0: "B"})
    x, y = bubble_center(standard.answers, image.width, image.height, 0, 0, 1)
    r = bubble_radius(standard.answers, image.width, image.height)

    overlay = render_overlay(image, standard, DetectionThresholds(answer_absolute=1.0))

    assert tuple(overlay[y - r, x]) == OVERLAY_COLOR
