"""Main entry point for the OMR grading package."""
import sys
import dataclasses
import logging
import argparse
from pathlib import Path

from .common.config import OMR_DEBUG, OMRSettings, load_config
from .common.progress import ProgressPrinter
from .common.validators import find_sheet_files, validate_sheet_file
from .errors import OMRError
from .export import export_invalid_csv, export_results_csv
from .overlay import render_overlay
from .processor import BatchResult, SheetProcessor
from .quality import assess_quality
from .scoring import (
    MarkingScheme,
    ScoringEngine,
    answer_key_from_sheet,
    load_answer_key,
    load_student_sheets_csv,
    save_answer_key,
    summarize,
)
from .store import ResultStore


def print_menu():
    """Print the main menu."""
    print("\n=== OMR Grading Tool ===\n")
    print("1. Scan and score sheets")
    print("2. Add sheets to existing results")
    print("3. Check sheet quality")
    print("4. Show results summary")
    print("5. Clear stored results")
    print("6. Score typed-in answers from a CSV file")
    print("0. Exit")


def main():
    """Main menu for OMR grading functions."""
    parser = argparse.ArgumentParser(description='OMR Grading Tool')
    parser.add_argument('config', help='Path to configuration JSON file')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if OMR_DEBUG else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
        print(f"Loaded configuration from: {args.config}")
    except Exception as e:
        print(f"Error loading config: {e}")
        sys.exit(1)

    while True:
        print_menu()
        try:
            choice = input("\nEnter your choice (0-6): ").strip()
        except (KeyboardInterrupt, EOFError):
            sys.exit(0)

        if choice == "0":
            sys.exit(0)
        elif choice == "1":
            run_scan_and_score(config)
        elif choice == "2":
            run_add_sheets(config)
        elif choice == "3":
            run_check_quality(config)
        elif choice == "4":
            run_show_summary(config)
        elif choice == "5":
            run_clear_results(config)
        elif choice == "6":
            run_score_csv(config)
        else:
            print("Invalid choice. Please try again.")


def scan_sheets(config: OMRSettings, processor: SheetProcessor, paths) -> BatchResult:
    """Scan sheet files with a progress counter and report rejected pages."""
    progress = ProgressPrinter("Scanning sheets", len(paths))
    batch = BatchResult()
    for i, path in enumerate(paths, start=1):
        file_batch = processor.process_files([path])
        batch.extend(file_batch)
        progress.update(i, failed=bool(file_batch.failed_files or file_batch.invalid))
    progress.done()
    if config.class_label:
        batch.valid = [dataclasses.replace(result, class_label=config.class_label) for result in batch.valid]

    output_folder = Path(config.paths.output_folder)
    for name, error in batch.failed_files:
        print(f"  Could not read {name}: {error}")
    for result in batch.invalid:
        print(f"  Invalid sheet {result.location} ({result.identity.name}, {result.identity.roll_number}): {result.failure_reason}")
    if batch.invalid:
        print(f"  Invalid sheets listed in: {export_invalid_csv(batch.invalid, output_folder / 'invalid_sheets.csv')}")

    if config.processing.retain_images:
        store = ResultStore(output_folder)
        for result in batch.valid:
            if result.image is not None:
                store.save_image(result.identity.roll_number,
                                 render_overlay(result.image, processor.template, processor.detection_thresholds))

    return batch


def build_answer_key(config: OMRSettings, processor: SheetProcessor):
    """Load the answer key from CSV/JSON, or scan it if it is a sheet."""
    key_path = Path(config.paths.answer_key or "")
    if key_path.suffix.lower() in (".csv", ".json"):
        return load_answer_key(key_path)

    validate_sheet_file(key_path, "Answer key sheet")
    batch = processor.process_file(key_path)
    if not batch.valid:
        reason = batch.invalid[0].failure_reason if batch.invalid else "no pages"
        raise OMRError(f"Answer key sheet could not be read: {reason}")
    key = answer_key_from_sheet(batch.valid[0])
    save_answer_key(key, Path(config.paths.output_folder) / "answer_key.json")
    return key


def print_ranking(students):
    for student in students:
        print(f"  {student.rank:>3}. {student.identity.name:<20} {student.identity.roll_number:<12} "
              f"{student.total_marks:>7g}/{student.max_marks:g}  ({student.percentage:.2f}%)")


def score_and_save(config: OMRSettings, key, results):
    """Score a fresh batch, replace the stored results and export the ranking."""
    engine = ScoringEngine(key, MarkingScheme(**config.marking.model_dump()))
    output_folder = Path(config.paths.output_folder)

    def replace_stored(_):
        engine.score(results)
        return engine

    ranked = ResultStore(output_folder).update(replace_stored).ranked()
    csv_path = export_results_csv(ranked, output_folder / "results.csv")
    print_ranking(ranked)
    return ranked, csv_path


def run_scan_and_score(config):
    """Scan all sheets in the sheets folder and score them."""
    print("\n--- Scan and score sheets ---")

    try:
        processor = SheetProcessor.from_settings(config)
        key = build_answer_key(config, processor)
        paths = find_sheet_files(Path(config.paths.sheets_folder or ""))
        batch = scan_sheets(config, processor, paths)

        ranked, csv_path = score_and_save(config, key, batch.valid)
        print(f"Success! Scored {len(ranked)} students, results saved to: {csv_path}")
    except Exception as e:
        print(f"Error: {e}")


def run_add_sheets(config):
    """Score extra sheets with the stored key and re-rank all students."""
    print("\n--- Add sheets to existing results ---")

    try:
        output_folder = Path(config.paths.output_folder)
        store = ResultStore(output_folder)
        if store.load_engine() is None:
            print("No stored results found. Please scan and score sheets first.")
            return

        path = Path(input("Path to sheet file or folder: ").strip())
        paths = find_sheet_files(path) if path.is_dir() else [path]
        processor = SheetProcessor.from_settings(config)
        batch = scan_sheets(config, processor, paths)

        ranked = store.add_students(batch.valid)
        csv_path = export_results_csv(ranked, output_folder / "results.csv")
        print_ranking(ranked)
        print(f"Success! Added {len(batch.valid)} students, results saved to: {csv_path}")
    except Exception as e:
        print(f"Error: {e}")


def run_score_csv(config):
    """Score answers typed into a CSV file (name, roll number, answers...)."""
    print("\n--- Score typed-in answers ---")

    try:
        path = Path(input("Path to student answers CSV: ").strip())
        results = load_student_sheets_csv(path, config.class_label)
        print(f"Read {len(results)} students from {path.name}")

        key = build_answer_key(config, SheetProcessor.from_settings(config))
        ranked, csv_path = score_and_save(config, key, results)
        print(f"Success! Scored {len(ranked)} students, results saved to: {csv_path}")
    except Exception as e:
        print(f"Error: {e}")



def run_check_quality(config):
    """Report resolution, sharpness and contrast of every page in a file."""
    print("\n--- Check sheet quality ---")

    try:
        path = Path(input("Path to sheet file: ").strip())
        processor = SheetProcessor.from_settings(config)
        pages = processor.rasterizer.rasterize_file(path)
        for page in pages:
            verdict = assess_quality(page, processor.quality_thresholds)
            status = "OK" if verdict.is_valid else verdict.failure_reason.value
            print(f"  Page {page.page_index + 1}: {verdict.width}x{verdict.height}, "
                  f"sharpness {verdict.sharpness:.1f}, contrast {verdict.contrast:.2f} -> {status}")
        for page in pages:
            assess_quality(page, processor.quality_thresholds).raise_if_invalid()
        print("Success! All pages are good enough to score")
    except Exception as e:
        print(f"Error: {e}")


def run_show_summary(config):
    """Print the stored ranking and batch statistics."""
    print("\n--- Results summary ---")

    try:
        engine = ResultStore(Path(config.paths.output_folder)).load_engine()
        if engine is None:
            print("No stored results found.")
            return
        ranked = engine.ranked()
        print_ranking(ranked)
        stats = summarize(ranked)
        print(f"Students: {stats['students']}, average {stats['average']:.2f}%, "
              f"highest {stats['highest']:.2f}%, lowest {stats['lowest']:.2f}%")
    except Exception as e:
        print(f"Error: {e}")


def run_clear_results(config):
    """Delete stored results and images."""
    print("\n--- Clear stored results ---")

    try:
        images, results = ResultStore(Path(config.paths.output_folder)).clear()
        print(f"Success! Removed {images} images{' and the stored results' if results else ''}")
    except Exception as e:
        print(f"Error: {e}")


if __name__ == "__main__":
    main()
