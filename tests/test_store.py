import json
import threading

import numpy as np
import pytest

from conftest import make_sheet
from omr_grading.errors import OMRError
from omr_grading.identity import StudentIdentity
from omr_grading.processor import SheetResult
from omr_grading.scoring import AnswerKey, MarkingScheme, ScoringEngine
from omr_grading.store import ResultStore, student_from_dict, student_to_dict


def scored_engine():
    engine = ScoringEngine(AnswerKey.from_options(["A", "B"]), MarkingScheme(correct_marks=2, negative_marking=False))
    engine.score([
        SheetResult(identity=StudentIdentity(name="ASHA", roll_number="17"), answers=("A", "C"),
                    quality=None, is_valid=True, page_number=1, source="class.pdf"),
        SheetResult(identity=StudentIdentity(), answers=("A", "B"), quality=None, is_valid=True),
    ])
    return engine


def test_student_dict_round_trip():
    student = scored_engine().students[0]

    assert student_from_dict(json.loads(json.dumps(student_to_dict(student)))) == student


def test_engine_round_trip(tmp_path):
    store = ResultStore(tmp_path / "results")
    engine = scored_engine()

    path = store.save_engine(engine)
    restored = store.load_engine()

    assert path.name == "results.json"
    assert restored.key == engine.key
    assert restored.scheme == engine.scheme
    assert restored.students == engine.students
    assert [s.rank for s in restored.ranked()] == [1, 2]
    assert not list(path.parent.glob("*.tmp"))


def test_load_engine_without_results(tmp_path):
    assert ResultStore(tmp_path).load_engine() is None


def test_save_replaces_previous_results(tmp_path):
    store = ResultStore(tmp_path)
    engine = scored_engine()
    store.save_engine(engine)

    engine.add([SheetResult(identity=StudentIdentity(name="LATE"), answers=("B", "B"), quality=None, is_valid=True)])
    store.save_engine(engine)

    assert len(store.load_engine().students) == 3


def test_images_are_keyed_by_roll_number(tmp_path, standard):
    store = ResultStore(tmp_path)
    page = make_sheet(standard, answers={0: "A"})

    path = store.save_image("17", page)
    loaded = store.load_image("17")

    assert path == tmp_path / "images" / "17.png"
    assert loaded.size == (page.width, page.height)
    assert np.array_equal(np.asarray(loaded), page.rgba[:, :, :3])


def test_bgr_overlay_is_saved_as_rgb(tmp_path):
    store = ResultStore(tmp_path)
    overlay = np.zeros((4, 4, 3), dtype=np.uint8)
    overlay[:, :, 2] = 255  # red in BGR

    store.save_image("5", overlay)

    assert tuple(np.asarray(store.load_image("5"))[0, 0]) == (255, 0, 0)


def test_unknown_roll_number_is_not_stored(tmp_path, blank_image):
    store = ResultStore(tmp_path)

    assert store.save_image("N/A", blank_image) is None
    assert store.load_image("N/A") is None
    assert store.load_image("99") is None


def test_clear(tmp_path, blank_image):
    store = ResultStore(tmp_path)
    store.save_engine(scored_engine())
    store.save_image("1", blank_image)
    store.save_image("2", blank_image)

    assert store.clear() == (2, True)
    assert store.load_engine() is None
    assert store.clear() == (0, False)


def test_add_students_reranks_stored_results(tmp_path):
    store = ResultStore(tmp_path)
    store.save_engine(scored_engine())

    ranked = store.add_students([
        SheetResult(identity=StudentIdentity(name="LATE", roll_number="30"), answers=("A", "B"),
                    quality=None, is_valid=True),
    ])

    assert len(ranked) == 3
    assert [s.identity.name for s in ranked][:2] == ["Unknown", "LATE"]
    assert len(store.load_engine().students) == 3


def test_add_students_needs_stored_results(tmp_path):
    with pytest.raises(OMRError, match="No stored results"):
        ResultStore(tmp_path).add_students([])
    assert not (tmp_path / "results.json").exists()


def test_concurrent_additions_are_not_lost(tmp_path):
    ResultStore(tmp_path).save_engine(scored_engine())
    threads_count, additions = 4, 15
    errors = []

    def add_many(worker):
        # each thread opens its own store on the same folder
        store = ResultStore(tmp_path)
        try:
            for i in range(additions):
                store.add_students([
                    SheetResult(identity=StudentIdentity(name=f"W{worker}-{i}", roll_number=f"{worker}{i}"),
                                answers=("A", ""), quality=None, is_valid=True),
                ])
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=add_many, args=(n,)) for n in range(threads_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    names = {s.identity.name for s in ResultStore(tmp_path).load_engine().students}
    assert len(names) == 2 + threads_count * additions
    assert {f"W{n}-{i}" for n in range(threads_count) for i in range(additions)} <= names


def test_update_writes_nothing_when_the_change_fails(tmp_path):
    store = ResultStore(tmp_path)
    store.save_engine(scored_engine())

    def fail(engine):
        engine.students = []
        raise ValueError("bad batch")

    with pytest.raises(ValueError):
        store.update(fail)
    assert len(store.load_engine().students) == 2
