"""Validation utilities for input files and folders.

This module checks the paths handed to the command line tool before any
processing starts, so that a typo in the configuration file is reported with
a clear message instead of failing halfway through a batch.
"""
from pathlib import Path
from typing import List


# Sheet file suffixes and the MIME type each one is decoded as
SHEET_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".bmp": "image/bmp",
}

ANSWER_KEY_SUFFIXES = (".csv", ".json")
STUDENT_ANSWER_SUFFIXES = (".csv", ".txt")


def validate_directory(path: Path, name: str = "Directory") -> None:
    """Validate that a path exists and is a directory.

    Args:
        path: Path object to validate
        name: Descriptive name for the path, used in error messages
              (e.g., "Sheets folder", "Output folder")

    Raises:
        ValueError: If path does not exist or is not a directory
    """
    if not path.is_dir():
        raise ValueError(f"Error: {name} is not a valid directory: {path}")


def validate_file(path: Path, name: str = "File") -> None:
    """Validate that a path exists and is a file.

    Raises:
        ValueError: If path does not exist or is not a file
    """
    if not path.is_file():
        raise ValueError(f"Error: {name} not found: {path}")


def mime_type_for(path: Path) -> str:
    """Return the MIME type a sheet file will be decoded as.

    Raises:
        ValueError: If the suffix is not a supported sheet format
    """
    suffix = Path(path).suffix.lower()
    if suffix not in SHEET_MIME_TYPES:
        supported = ", ".join(sorted(SHEET_MIME_TYPES))
        raise ValueError(f"Error: Unsupported sheet format '{suffix}' for {path} (supported: {supported})")
    return SHEET_MIME_TYPES[suffix]


def validate_sheet_file(path: Path, name: str = "Sheet file") -> str:
    """Validate that a scanned sheet exists and has a supported format.

    Returns:
        str: MIME type matching the file suffix

    Raises:
        ValueError: If the file is missing or its suffix is not supported
    """
    validate_file(path, name)
    return mime_type_for(path)


def validate_answer_key_file(path: Path, name: str = "Answer key file") -> None:
    """Validate that an answer key exists and is a CSV or JSON file.

    A scanned answer key (PDF or image) is also accepted, since it is read
    with the same pipeline as the student sheets.

    Raises:
        ValueError: If the file is missing or has an unknown suffix
    """
    validate_file(path, name)
    suffix = path.suffix.lower()
    if suffix not in ANSWER_KEY_SUFFIXES and suffix not in SHEET_MIME_TYPES:
        raise ValueError(f"Error: {name} must be a CSV, JSON, PDF or image file: {path}")


def validate_student_answers_file(path: Path, name: str = "Student answers file") -> None:
    """Validate that typed-in student answers exist as a CSV or text file.

    Raises:
        ValueError: If the file is missing or has an unknown suffix
    """
    validate_file(path, name)
    if path.suffix.lower() not in STUDENT_ANSWER_SUFFIXES:
        raise ValueError(f"Error: {name} must be a CSV or TXT file: {path}")


def find_sheet_files(directory: Path) -> List[Path]:
    """List supported sheet files in a folder (recursively), sorted by path.

    Raises:
        ValueError: If directory is not a valid directory
    """
    validate_directory(directory, "Sheets folder")
    return sorted(p for p in directory.rglob("*") if p.is_file() and p.suffix.lower() in SHEET_MIME_TYPES)
