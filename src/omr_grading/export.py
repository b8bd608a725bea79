"""Write scored results and rejected sheets to CSV files."""
from pathlib import Path
from typing import Sequence

import pandas as pd

from .processor import SheetResult
from .scoring import ScoredStudent


UNSPECIFIED_CLASS = "Not specified"

RESULT_COLUMNS = [
    "rank", "name", "roll_number", "hall_ticket", "class", "total_marks", "max_marks",
    "percentage", "correct", "wrong", "unattempted", "source", "page",
]


def results_to_dataframe(students: Sequence[ScoredStudent], include_answers: bool = True) -> pd.DataFrame:
    """One row per student in rank order, optionally with a Q1..Qn column per answer.

    Empty cells mean the question was not attempted.
    """
    rows = []
    for student in sorted(students, key=lambda s: s.rank):
        row = {
            "rank": student.rank,
            "name": student.identity.name,
            "roll_number": student.identity.roll_number,
            "hall_ticket": student.identity.hall_ticket,
            "class": student.class_label or UNSPECIFIED_CLASS,
            "total_marks": student.total_marks,
            "max_marks": student.max_marks,
            "percentage": student.percentage,
            "correct": student.correct_count,
            "wrong": student.wrong_count,
            "unattempted": student.unattempted_count,
            "source": student.source or "",
            "page": student.page_number if student.page_number is not None else "",
        }
        if include_answers:
            for outcome in student.outcomes:
                row[f"Q{outcome.question_number}"] = outcome.student_answer
        rows.append(row)

    df = pd.DataFrame(rows)
    if df.empty:
        df = pd.DataFrame(columns=RESULT_COLUMNS)
    return df


def invalid_sheets_to_dataframe(results: Sequence[SheetResult]) -> pd.DataFrame:
    """List rejected pages with their location, detected identity and reason."""
    rows = [{
        "source": result.source or "",
        "page": result.page_number if result.page_number is not None else "",
        "name": result.identity.name,
        "roll_number": result.identity.roll_number,
        "reason": result.failure_reason or "",
    } for result in results]
    return pd.DataFrame(rows, columns=["source", "page", "name", "roll_number", "reason"])


def export_results_csv(students: Sequence[ScoredStudent], output_path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    results_to_dataframe(students).to_csv(output_path, index=False)
    return output_path


def export_invalid_csv(results: Sequence[SheetResult], output_path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    invalid_sheets_to_dataframe(results).to_csv(output_path, index=False)
    return output_path
