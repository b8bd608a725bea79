import numpy as np

from conftest import fill_bubble, make_sheet
from omr_grading.answers import count_attempted, decode_answers, detect_answers
from omr_grading.grid import DetectionThresholds
from omr_grading.raster import RasterImage


def test_detects_marked_options_on_neet_sheet(neet):
    marks = {0: "A", 1: "B", 44: "D", 45: "C", 179: "B"}
    image = make_sheet(neet, answers=marks)

    answers = detect_answers(image, neet)

    assert len(answers) == 180
    for question, letter in marks.items():
        assert answers[question] == letter
    assert count_attempted(answers) == len(marks)


def test_questions_run_down_each_column_first(standard):
    # 13 rows per column: question 14 is the first row of the second column
    image = make_sheet(standard, answers={13: "D"})

    answers = detect_answers(image, standard)

    assert len(answers) == 50
    assert answers[13] == "D"
    assert answers[0] == answers[12] == ""


def test_standard_layout_has_a_partial_last_column(standard):
    assert (standard.answers.columns, standard.answers.rows) == (4, 13)
    assert standard.question_count == 50
    # question 50 is row 11 of the fourth column
    image = make_sheet(standard, answers={49: "C"})

    answers = detect_answers(image, standard)

    assert len(answers) == 50
    assert answers[49] == "C"
    assert standard.answers.has_cell(3, 10)
    assert not standard.answers.has_cell(3, 11)


def test_decode_answers_cuts_to_question_count():
    values = np.zeros((2, 2, 4))
    values[1, 1, 0] = 0.9

    assert decode_answers(values) == ("", "", "", "A")
    assert decode_answers(values, question_count=3) == ("", "", "")


def test_double_marked_question_is_unattempted(standard):
    image = make_sheet(standard, answers={3: "A", 4: "B"})
    pixels = image.rgba[:, :, :3].copy()
    # second mark on question 4
    fill_bubble(pixels, standard.answers, 0, 3, 2)
    image = RasterImage.from_array(pixels)

    answers = detect_answers(image, standard)

    assert answers[3] == ""
    assert answers[4] == "B"


def test_blank_sheet_has_no_answers(neet, blank_image):
    assert count_attempted(detect_answers(blank_image, neet)) == 0


def test_decode_answers_uses_thresholds():
    values = np.zeros((1, 2, 4))
    values[0, 0] = [0.0, 0.3, 0.0, 0.0]
    values[0, 1] = [0.5, 0.0, 0.0, 0.0]

    assert decode_answers(values) == ("", "A")
    assert decode_answers(values, DetectionThresholds(answer_absolute=0.2)) == ("B", "A")


def test_count_attempted():
    assert count_attempted(["A", "", "C", ""]) == 2
    assert count_attempted(()) == 0
