import pytest

from omr_grading.common.progress import ProgressPrinter
from omr_grading.common.validators import (
    find_sheet_files,
    mime_type_for,
    validate_answer_key_file,
    validate_directory,
    validate_sheet_file,
)


def test_mime_types():
    assert mime_type_for("scan.PDF") == "application/pdf"
    assert mime_type_for("scan.jpeg") == "image/jpeg"
    assert mime_type_for("scan.bmp") == "image/bmp"
    with pytest.raises(ValueError, match="Unsupported sheet format"):
        mime_type_for("scan.tiff")


def test_validate_sheet_file(tmp_path):
    path = tmp_path / "a.png"
    path.write_bytes(b"x")

    assert validate_sheet_file(path) == "image/png"
    with pytest.raises(ValueError, match="not found"):
        validate_sheet_file(tmp_path / "missing.png")


def test_validate_answer_key_file(tmp_path):
    for name in ("key.csv", "key.json", "key.pdf"):
        (tmp_path / name).write_text("")
        validate_answer_key_file(tmp_path / name)

    (tmp_path / "key.txt").write_text("")
    with pytest.raises(ValueError):
        validate_answer_key_file(tmp_path / "key.txt")


def test_validate_directory(tmp_path):
    validate_directory(tmp_path)
    with pytest.raises(ValueError, match="Sheets folder"):
        validate_directory(tmp_path / "missing", "Sheets folder")


def test_find_sheet_files_is_recursive_and_sorted(tmp_path):
    (tmp_path / "b").mkdir()
    for name in ("b/2.jpg", "a.pdf", "notes.txt", "b/1.PNG"):
        (tmp_path / name).write_bytes(b"")

    found = find_sheet_files(tmp_path)

    assert [p.relative_to(tmp_path).as_posix() for p in found] == ["a.pdf", "b/1.PNG", "b/2.jpg"]


def test_progress_printer_counts_invalid_pages(capsys):
    progress = ProgressPrinter("Scanning sheets", 3)
    progress.update(1)
    progress.update(2, failed=True)
    progress.done()

    out = capsys.readouterr().out
    assert "Scanning sheets...2/3 (1 invalid)" in out
    assert out.rstrip().endswith("Scanning sheets...Done! (1 invalid)")
