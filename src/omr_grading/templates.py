"""Sheet templates: the fixed bubble geometry of each supported exam format.

A new sheet layout is a new entry in ``TEMPLATES``, not new code. All
positions are fractions of the page width/height, measured on the printed
sheets after rendering PDFs at 2x.
"""
from dataclasses import dataclass
from typing import Dict

from .grid import BubbleGridSpec, Interpretation


ANSWER_RADIUS_RATIO = 0.12
IDENTITY_RADIUS_RATIO = 0.3


@dataclass(frozen=True)
class SheetTemplate:
    name: str
    answers: BubbleGridSpec
    name_grid: BubbleGridSpec
    roll_grid: BubbleGridSpec
    hall_ticket_grid: BubbleGridSpec

    @property
    def question_count(self) -> int:
        return self.answers.cell_count

    @property
    def option_letters(self) -> str:
        return "".join(chr(65 + i) for i in range(self.answers.options))


def _answer_grid(start_x, start_y, width, height, columns, rows, options=4, questions=None) -> BubbleGridSpec:
    return BubbleGridSpec(
        start_x=start_x, start_y=start_y, width=width, height=height,
        columns=columns, rows=rows,
        interpretation=Interpretation.OPTION,
        radius_ratio=ANSWER_RADIUS_RATIO,
        options=options,
        option_start=0.15,  # question number printed in the first 15% of the cell
        option_span=0.8,
        cells=questions,
    )


# The identity block is shared by both layouts
NAME_GRID = BubbleGridSpec(0.08, 0.18, 0.45, 0.16, columns=20, rows=26,
                           interpretation=Interpretation.LETTER, radius_ratio=IDENTITY_RADIUS_RATIO)
ROLL_GRID = BubbleGridSpec(0.58, 0.18, 0.30, 0.12, columns=10, rows=10,
                           interpretation=Interpretation.DIGIT, radius_ratio=IDENTITY_RADIUS_RATIO)
HALL_TICKET_GRID = BubbleGridSpec(0.58, 0.31, 0.30, 0.12, columns=7, rows=10,
                                  interpretation=Interpretation.DIGIT, radius_ratio=IDENTITY_RADIUS_RATIO)


TEMPLATES: Dict[str, SheetTemplate] = {
    # NEET style: 4 columns of 45 questions
    "neet-180": SheetTemplate(
        name="neet-180",
        answers=_answer_grid(0.05, 0.40, 0.70, 0.55, columns=4, rows=45),
        name_grid=NAME_GRID,
        roll_grid=ROLL_GRID,
        hall_ticket_grid=HALL_TICKET_GRID,
    ),
    # Class test: 4 columns of 13, the last one holding 11 questions
    "standard-50": SheetTemplate(
        name="standard-50",
        answers=_answer_grid(0.05, 0.45, 0.70, 0.50, columns=4, rows=13, questions=50),
        name_grid=NAME_GRID,
        roll_grid=ROLL_GRID,
        hall_ticket_grid=HALL_TICKET_GRID,
    ),
}


def get_template(template_id: str) -> SheetTemplate:
    """Look up a template by id.

    Raises:
        ValueError: If the id is unknown
    """
    try:
        return TEMPLATES[template_id]
    except KeyError:
        raise ValueError(f"Unknown sheet template '{template_id}' (available: {', '.join(sorted(TEMPLATES))})") from None
