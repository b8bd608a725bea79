"""Score detected answers against an answer key and rank the students.

Comparison is exact (case-insensitive) on the option letter; there is no
fuzzy matching. Per question an answer is correct, wrong (attempted but
different from the key) or unattempted (empty).

    total = correct * correct_marks
          + wrong * wrong_marks            (only with negative marking)
          + unattempted * unattempted_marks

Students are ranked by total marks, highest first. Equal totals keep the
order in which the sheets were scored, so ranks are always 1..n without ties.
"""
import csv
import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import pandas as pd
from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

from .common.validators import validate_answer_key_file, validate_student_answers_file
from .errors import KeyMismatchError
from .identity import StudentIdentity
from .processor import SheetResult


class AnswerKeyEntry(BaseModel):
    question_number: int = Field(ge=1)
    correct_option: str = Field(min_length=1)

    @field_validator("correct_option")
    @classmethod
    def normalize_option(cls, value: str) -> str:
        return value.strip().upper()


class AnswerKey(BaseModel):
    """Ordered answer key. Question numbers must run 1..n without gaps."""
    entries: List[AnswerKeyEntry]

    @model_validator(mode="after")
    def check_numbering(self):
        self.entries = sorted(self.entries, key=lambda entry: entry.question_number)
        numbers = [entry.question_number for entry in self.entries]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError("Answer key questions must be numbered 1..n without gaps or duplicates")
        return self

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_options(cls, options: Sequence[str]) -> "AnswerKey":
        """Build a key from option letters for questions 1..n."""
        return cls(entries=[AnswerKeyEntry(question_number=i + 1, correct_option=option)
                            for i, option in enumerate(options)])


class MarkingScheme(BaseModel):
    correct_marks: float = Field(4.0, gt=0)
    wrong_marks: float = Field(-1.0, le=0)
    unattempted_marks: float = 0.0
    negative_marking: bool = True


@dataclass(frozen=True)
class QuestionOutcome:
    question_number: int
    student_answer: str
    correct_answer: str
    is_correct: bool
    is_attempted: bool


@dataclass(frozen=True)
class ScoredStudent:
    identity: StudentIdentity
    total_marks: float
    max_marks: float
    percentage: float
    correct_count: int
    wrong_count: int
    unattempted_count: int
    outcomes: Tuple[QuestionOutcome, ...] = field(repr=False)
    rank: int = 0
    page_number: Optional[int] = None
    source: Optional[str] = None
    class_label: Optional[str] = None


def score_answers(answers: Sequence[str], key: AnswerKey, scheme: MarkingScheme,
                  identity: StudentIdentity = StudentIdentity(),
                  page_number: Optional[int] = None, source: Optional[str] = None,
                  class_label: Optional[str] = None) -> ScoredStudent:
    """Score one answer record. The result is unranked (rank 0).

    Raises:
        KeyMismatchError: If the record and the key differ in length
    """
    if len(answers) != len(key):
        raise KeyMismatchError(len(key), len(answers), page_number, source)

    outcomes = []
    for entry, answer in zip(key.entries, answers):
        student_answer = (answer or "").strip().upper()
        is_attempted = student_answer != ""
        outcomes.append(QuestionOutcome(
            question_number=entry.question_number,
            student_answer=student_answer,
            correct_answer=entry.correct_option,
            is_correct=is_attempted and student_answer == entry.correct_option,
            is_attempted=is_attempted,
        ))

    correct = sum(1 for o in outcomes if o.is_correct)
    wrong = sum(1 for o in outcomes if o.is_attempted and not o.is_correct)
    unattempted = len(outcomes) - correct - wrong

    total = correct * scheme.correct_marks + unattempted * scheme.unattempted_marks
    if scheme.negative_marking:
        total += wrong * scheme.wrong_marks

    max_marks = len(key) * scheme.correct_marks
    percentage = round(total / max_marks * 100, 2) if max_marks else 0.0

    return ScoredStudent(
        identity=identity,
        total_marks=total,
        max_marks=max_marks,
        percentage=percentage,
        correct_count=correct,
        wrong_count=wrong,
        unattempted_count=unattempted,
        outcomes=tuple(outcomes),
        page_number=page_number,
        source=source,
        class_label=class_label,
    )


def rank_students(students: Sequence[ScoredStudent]) -> List[ScoredStudent]:
    """Sort by total marks (highest first, stable) and number ranks from 1."""
    ordered = sorted(students, key=lambda s: s.total_marks, reverse=True)
    return [dataclasses.replace(student, rank=i + 1) for i, student in enumerate(ordered)]


class ScoringEngine:
    """Score batches of sheets against one answer key and marking scheme.

    The engine remembers every student it scored, so sheets added later are
    ranked together with the earlier ones under the same key and scheme.
    """

    def __init__(self, key: AnswerKey, scheme: MarkingScheme = MarkingScheme()):
        self.key = key
        self.scheme = scheme
        self.students: List[ScoredStudent] = []  # in scoring order

    def score(self, results) -> List[ScoredStudent]:
        """Score a fresh batch of valid sheet results and return them ranked.

        Raises:
            KeyMismatchError: Before anything is scored, if any sheet does not
                              have one answer per key question
        """
        self.students = []
        return self.add(results)

    def add(self, results) -> List[ScoredStudent]:
        """Score more sheets and re-rank everything scored so far."""
        results = list(results)
        for result in results:
            if len(result.answers) != len(self.key):
                raise KeyMismatchError(len(self.key), len(result.answers), result.page_number, result.source)

        for result in results:
            self.students.append(score_answers(
                result.answers, self.key, self.scheme,
                identity=result.identity,
                page_number=result.page_number,
                source=result.source,
                class_label=result.class_label,
            ))
        return self.ranked()

    def ranked(self) -> List[ScoredStudent]:
        return rank_students(self.students)


def load_answer_key(path) -> AnswerKey:
    """Load an answer key from CSV or JSON.

    CSV files have one ``question_number,correct_option`` row per question and
    no header; rows with either value missing are skipped. JSON files hold a
    list of ``{"question_number": 1, "correct_option": "A"}`` objects.

    Raises:
        ValueError: If the file is missing or not a valid key
    """
    path = Path(path)
    validate_answer_key_file(path)

    if path.suffix.lower() == ".json":
        entries = TypeAdapter(List[AnswerKeyEntry]).validate_json(path.read_bytes())
        return AnswerKey(entries=entries)

    df = pd.read_csv(path, header=None, dtype=str, skip_blank_lines=True)
    if df.shape[1] < 2:
        raise ValueError(f"Error: Answer key CSV needs two columns (question, answer): {path}")

    df = df.iloc[:, :2].dropna()
    # Allow a header row such as "question,answer"
    df = df[df.iloc[:, 0].str.strip().str.isdigit()]
    entries = [AnswerKeyEntry(question_number=int(q), correct_option=a) for q, a in df.itertuples(index=False)]
    return AnswerKey(entries=entries)


def load_student_sheets_csv(path, class_label: Optional[str] = None) -> List[SheetResult]:
    """Read typed-in answers as sheet results, one per row.

    Rows are ``student_name,roll_number,q1,q2,...`` without a header. Short
    rows are padded with unattempted answers up to the widest row, and rows
    without a name or roll number are skipped. Answers are trimmed and upper
    cased. The results go through ``ScoringEngine`` like scanned sheets, so a
    file whose answer count differs from the key raises ``KeyMismatchError``.

    Raises:
        ValueError: If the file is missing or has no answer column
    """
    path = Path(path)
    validate_student_answers_file(path)

    with open(path, newline="") as f:
        width = max((len(row) for row in csv.reader(f)), default=0)
    if width < 3:
        raise ValueError(f"Error: Student answers CSV needs a name, a roll number and answer columns: {path}")

    df = pd.read_csv(path, header=None, names=list(range(width)), dtype=str,
                     keep_default_na=False, skip_blank_lines=True)
    df = df.fillna("").apply(lambda column: column.str.strip())
    df = df[(df[0] != "") & (df[1] != "")]

    results = []
    for row in df.itertuples(index=False):
        results.append(SheetResult(
            identity=StudentIdentity(name=row[0], roll_number=row[1]),
            answers=tuple(answer.upper() for answer in row[2:]),
            quality=None,
            is_valid=True,
            source=path.name,
            class_label=class_label,
        ))
    return results


def answer_key_from_sheet(result, default_option: str = "A") -> AnswerKey:
    """Build a key from a scanned answer key sheet.

    Questions left blank on the key sheet get ``default_option``.
    """
    return AnswerKey.from_options([answer or default_option for answer in result.answers])


def save_answer_key(key: AnswerKey, path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([entry.model_dump() for entry in key.entries], indent=2))


def summarize(students: Sequence[ScoredStudent]) -> dict:
    """Average, highest and lowest percentage of a batch."""
    if not students:
        return {"students": 0, "average": 0.0, "highest": 0.0, "lowest": 0.0}
    percentages = [s.percentage for s in students]
    return {
        "students": len(students),
        "average": round(sum(percentages) / len(percentages), 2),
        "highest": max(percentages),
        "lowest": min(percentages),
    }
