"""Keep scored results and page images on disk between runs.

Results are stored as one JSON document that is replaced on every write,
together with the answer key and marking scheme they were scored with, so
sheets added later are scored the same way. Page images are stored
separately, one PNG per roll number.

Every store opened on the same folder shares one lock per file, and
``update``/``add_students`` hold it from load to save, so concurrent
additions cannot overwrite each other.
"""
import dataclasses
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from .errors import OMRError
from .identity import StudentIdentity, is_known_roll_number
from .raster import RasterImage
from .scoring import AnswerKey, MarkingScheme, QuestionOutcome, ScoredStudent, ScoringEngine

logger = logging.getLogger(__name__)

RESULTS_FILE = "results.json"
IMAGES_FOLDER = "images"

# (resolved root, key) -> lock, shared by every ResultStore in the process
_LOCKS: Dict[Tuple[str, str], threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def student_to_dict(student: ScoredStudent) -> dict:
    return dataclasses.asdict(student)


def student_from_dict(data: dict) -> ScoredStudent:
    data = dict(data)
    data["identity"] = StudentIdentity(**data["identity"])
    data["outcomes"] = tuple(QuestionOutcome(**o) for o in data["outcomes"])
    return ScoredStudent(**data)


class ResultStore:
    def __init__(self, root):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _lock(self, key: str) -> threading.Lock:
        with _LOCKS_GUARD:
            return _LOCKS.setdefault((str(self.root.resolve()), key), threading.Lock())

    def _write_atomic(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            os.unlink(tmp)
            raise

    def _save(self, engine: ScoringEngine) -> Path:
        document = {
            "answer_key": [entry.model_dump() for entry in engine.key.entries],
            "marking": engine.scheme.model_dump(),
            "students": [student_to_dict(s) for s in engine.students],
        }
        path = self.root / RESULTS_FILE
        self._write_atomic(path, json.dumps(document, indent=2).encode("utf-8"))
        return path

    def _load(self) -> Optional[ScoringEngine]:
        path = self.root / RESULTS_FILE
        if not path.exists():
            return None
        document = json.loads(path.read_text())

        engine = ScoringEngine(
            AnswerKey.model_validate({"entries": document["answer_key"]}),
            MarkingScheme.model_validate(document["marking"]),
        )
        engine.students = [student_from_dict(s) for s in document["students"]]
        return engine

    def save_engine(self, engine: ScoringEngine) -> Path:
        """Replace the stored results with everything the engine has scored."""
        with self._lock(RESULTS_FILE):
            return self._save(engine)

    def load_engine(self) -> Optional[ScoringEngine]:
        """Restore the engine (key, scheme and scored students), if saved."""
        with self._lock(RESULTS_FILE):
            return self._load()

    def update(self, fn: Callable[[Optional[ScoringEngine]], ScoringEngine]) -> ScoringEngine:
        """Load, modify and save the results as one step.

        ``fn`` receives the stored engine (None when nothing is stored) and
        returns the engine to save. Nothing is written if it raises.
        """
        with self._lock(RESULTS_FILE):
            engine = fn(self._load())
            self._save(engine)
            return engine

    def add_students(self, results) -> List[ScoredStudent]:
        """Score more sheets into the stored results and return everyone ranked.

        Raises:
            OMRError: If no results have been stored yet
            KeyMismatchError: If a sheet does not match the stored key
        """
        added = []

        def add(engine: Optional[ScoringEngine]) -> ScoringEngine:
            if engine is None:
                raise OMRError("No stored results found. Scan and score sheets first.")
            added.extend(engine.add(results))
            return engine

        self.update(add)
        logger.debug("Stored results now hold %d students", len(added))
        return added

    def image_path(self, roll_number: str) -> Path:
        return self.root / IMAGES_FOLDER / f"{roll_number}.png"

    def save_image(self, roll_number: str, image) -> Optional[Path]:
        """Save a page image under the student's roll number.

        Args:
            roll_number: Decoded roll number; "N/A" is not a usable key
            image: RasterImage or a BGR overlay array

        Returns:
            Path of the saved PNG, or None if the roll number is unknown
        """
        if not is_known_roll_number(roll_number):
            return None

        if isinstance(image, RasterImage):
            pil_image = Image.fromarray(image.rgba[:, :, :3].copy())
        else:
            pil_image = Image.fromarray(np.ascontiguousarray(np.asarray(image)[:, :, ::-1]))

        path = self.image_path(roll_number)
        with self._lock(f"image:{roll_number}"):
            path.parent.mkdir(parents=True, exist_ok=True)
            pil_image.save(path, "PNG")
        return path

    def load_image(self, roll_number: str) -> Optional[Image.Image]:
        path = self.image_path(roll_number)
        if not is_known_roll_number(roll_number) or not path.exists():
            return None
        with Image.open(path) as img:
            return img.copy()

    def clear(self) -> Tuple[int, bool]:
        """Delete stored images and results. Returns (images removed, results removed)."""
        removed = 0
        images = self.root / IMAGES_FOLDER
        if images.exists():
            for path in images.glob("*.png"):
                path.unlink()
                removed += 1
        results = self.root / RESULTS_FILE
        with self._lock(RESULTS_FILE):
            had_results = results.exists()
            if had_results:
                results.unlink()
        return removed, had_results
