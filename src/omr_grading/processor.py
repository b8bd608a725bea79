"""Process scanned sheets into per-page results.

Each page goes through the same fixed sequence of steps exactly once:

    RASTERIZING -> QUALITY_CHECKING -> DETECTING_ANSWERS
        -> (FALLBACK_RECOGNIZING) -> EXTRACTING_IDENTITY -> FINALIZED

The text fallback only runs when the bubble pass found no answer at all. A
page is valid when it passed the quality gate and at least one answer was
detected; otherwise it is finalized as invalid with a specific reason.

A multi-page document is split into pages that are processed independently
in a small worker pool. One bad page never aborts the batch: timeouts and
unexpected errors are turned into invalid results for that page only. A page
result is only added to the batch once it is finalized, so abandoning a
batch half way leaves nothing half written.
"""
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .answers import count_attempted, detect_answers
from .common.config import MAX_WORKERS, PAGE_TIMEOUT, OMRSettings
from .common.validators import validate_sheet_file
from .errors import DocumentDecodeError, NoSignalError, ProcessingTimeoutError
from .fallback import TextFallbackRecognizer
from .grid import DetectionThresholds
from .identity import StudentIdentity, extract_identity
from .quality import FailureReason, QualityThresholds, QualityVerdict, assess_quality
from .raster import PDF_MIME_TYPE, PageRasterizer, RasterImage
from .templates import SheetTemplate, get_template

logger = logging.getLogger(__name__)


class SheetState(str, Enum):
    RASTERIZING = "rasterizing"
    QUALITY_CHECKING = "quality_checking"
    DETECTING_ANSWERS = "detecting_answers"
    FALLBACK_RECOGNIZING = "fallback_recognizing"
    EXTRACTING_IDENTITY = "extracting_identity"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class SheetResult:
    identity: StudentIdentity
    answers: Tuple[str, ...]
    quality: Optional[QualityVerdict]
    is_valid: bool
    page_number: Optional[int] = None
    failure_reason: Optional[str] = None
    source: Optional[str] = None
    used_fallback: bool = False
    class_label: Optional[str] = None
    image: Optional[RasterImage] = field(default=None, repr=False, compare=False)

    @property
    def attempted_count(self) -> int:
        return count_attempted(self.answers)

    @property
    def location(self) -> str:
        """Human readable "file, page N" label."""
        parts = [self.source or "<upload>"]
        if self.page_number is not None:
            parts.append(f"page {self.page_number}")
        return ", ".join(parts)


@dataclass
class BatchResult:
    valid: List[SheetResult] = field(default_factory=list)
    invalid: List[SheetResult] = field(default_factory=list)
    failed_files: List[Tuple[str, str]] = field(default_factory=list)

    def add(self, result: SheetResult) -> None:
        (self.valid if result.is_valid else self.invalid).append(result)

    def extend(self, other: "BatchResult") -> None:
        self.valid.extend(other.valid)
        self.invalid.extend(other.invalid)
        self.failed_files.extend(other.failed_files)

    @property
    def page_count(self) -> int:
        return len(self.valid) + len(self.invalid)


class SheetProcessor:
    """Run the recognition pipeline for one sheet template.

    Args:
        template: Sheet layout to read
        rasterizer: Document to page converter
        quality_thresholds: Quality gate settings
        detection_thresholds: Bubble darkness thresholds
        fallback: Text recognizer used when no bubble is found, or None to
                  disable the fallback
        page_timeout: Seconds allowed per page (None waits forever)
        max_workers: Pages processed at the same time
        retain_images: Keep the page raster on each result
    """

    def __init__(self, template: SheetTemplate,
                 rasterizer: Optional[PageRasterizer] = None,
                 quality_thresholds: QualityThresholds = QualityThresholds(),
                 detection_thresholds: DetectionThresholds = DetectionThresholds(),
                 fallback: Optional[TextFallbackRecognizer] = TextFallbackRecognizer(),
                 page_timeout: Optional[float] = PAGE_TIMEOUT,
                 max_workers: int = MAX_WORKERS,
                 retain_images: bool = False):
        self.template = template
        self.rasterizer = rasterizer or PageRasterizer()
        self.quality_thresholds = quality_thresholds
        self.detection_thresholds = detection_thresholds
        self.fallback = fallback
        self.page_timeout = page_timeout
        self.max_workers = max(1, max_workers)
        self.retain_images = retain_images
        self._abandoned: List[Future] = []

    @property
    def abandoned_workers(self) -> int:
        """Timed-out page or rasterize calls whose threads are still running."""
        self._abandoned = [future for future in self._abandoned if not future.done()]
        return len(self._abandoned)

    def _abandon(self, future: Future, label: str) -> None:
        if future.cancel():
            return
        self._abandoned.append(future)
        logger.warning("%s: left running in the background (%d abandoned workers)", label, self.abandoned_workers)

    @classmethod
    def from_settings(cls, settings: OMRSettings, **overrides) -> "SheetProcessor":
        thresholds = settings.thresholds
        processing = settings.processing
        kwargs = dict(
            template=get_template(settings.template),
            rasterizer=PageRasterizer(scale=processing.pdf_scale),
            quality_thresholds=QualityThresholds(
                min_width=thresholds.min_width,
                min_height=thresholds.min_height,
                min_sharpness=thresholds.min_sharpness,
                min_contrast=thresholds.min_contrast,
            ),
            detection_thresholds=DetectionThresholds(
                answer_absolute=thresholds.answer_absolute,
                answer_relative=thresholds.answer_relative,
                identity_absolute=thresholds.identity_absolute,
            ),
            fallback=TextFallbackRecognizer() if processing.ocr_fallback else None,
            page_timeout=processing.page_timeout,
            max_workers=processing.max_workers,
            retain_images=processing.retain_images,
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    def process_page(self, image: RasterImage, page_number: Optional[int] = None,
                     source: Optional[str] = None) -> SheetResult:
        """Run quality gate, answer detection, fallback and identity on one page."""
        label = f"{source or '<upload>'} page {page_number or 1}"
        template = self.template

        logger.debug("%s: %s", label, SheetState.QUALITY_CHECKING.value)
        quality = assess_quality(image, self.quality_thresholds)

        logger.debug("%s: %s", label, SheetState.DETECTING_ANSWERS.value)
        answers = detect_answers(image, template, self.detection_thresholds)

        used_fallback = False
        if count_attempted(answers) == 0 and self.fallback is not None:
            logger.warning("%s: bubble detection found no answers, trying text recognition", label)
            logger.debug("%s: %s", label, SheetState.FALLBACK_RECOGNIZING.value)
            try:
                answers = self.fallback.recognize(image, template.question_count, template.option_letters)
                used_fallback = True
            except NoSignalError as e:
                logger.warning("%s: %s", label, e)

        logger.debug("%s: %s", label, SheetState.EXTRACTING_IDENTITY.value)
        identity = extract_identity(image, template, self.detection_thresholds)

        is_valid = quality.is_valid and count_attempted(answers) > 0
        failure_reason = None
        if not quality.is_valid:
            failure_reason = quality.failure_reason.value
        elif not is_valid:
            failure_reason = FailureReason.NO_ANSWERS.value

        logger.debug("%s: %s (%s)", label, SheetState.FINALIZED.value, "valid" if is_valid else failure_reason)
        return SheetResult(
            identity=identity,
            answers=answers,
            quality=quality,
            is_valid=is_valid,
            page_number=page_number,
            failure_reason=failure_reason,
            source=source,
            used_fallback=used_fallback,
            image=image if self.retain_images else None,
        )

    def process_pages(self, pages: Sequence[RasterImage], source: Optional[str] = None,
                      numbered: bool = True,
                      on_page: Optional[Callable[[SheetResult], None]] = None) -> BatchResult:
        """Process pages in groups of ``max_workers``, keeping page order.

        Each group gets its own pool, so a page stuck past its timeout does
        not hold up the pages after it. Python threads cannot be killed: a
        timed-out page keeps its thread until it returns, and these threads
        are not counted against ``max_workers``. A page that never returns
        therefore leaks one thread per call; ``abandoned_workers`` reports how
        many are still running.
        """
        batch = BatchResult()
        for start in range(0, len(pages), self.max_workers):
            group = pages[start:start + self.max_workers]
            executor = ThreadPoolExecutor(max_workers=len(group))
            try:
                numbers = [image.page_index + 1 if numbered else None for image in group]
                futures = [executor.submit(self.process_page, image, number, source)
                           for image, number in zip(group, numbers)]
                deadline = None if self.page_timeout is None else time.monotonic() + self.page_timeout

                for future, number in zip(futures, numbers):
                    result = self._collect(future, number, source, deadline)
                    batch.add(result)
                    if on_page is not None:
                        on_page(result)
            finally:
                executor.shutdown(wait=False, cancel_futures=True)
        return batch

    def process_document(self, data: bytes, mime_type: Optional[str] = None,
                         source: Optional[str] = None,
                         on_page: Optional[Callable[[SheetResult], None]] = None) -> BatchResult:
        """Rasterize a document and process all of its pages.

        Raises:
            DocumentDecodeError: If the document cannot be read at all
            ProcessingTimeoutError: If rasterizing exceeds the page timeout
        """
        logger.debug("%s: %s", source or "<upload>", SheetState.RASTERIZING.value)
        pages = self._rasterize(data, mime_type)
        numbered = mime_type == PDF_MIME_TYPE or (mime_type is None and data[:5] == b"%PDF-")
        return self.process_pages(pages, source=source, numbered=numbered, on_page=on_page)

    def process_file(self, path, on_page: Optional[Callable[[SheetResult], None]] = None) -> BatchResult:
        path = Path(path)
        mime_type = validate_sheet_file(path)
        return self.process_document(path.read_bytes(), mime_type, source=path.name, on_page=on_page)

    def process_files(self, paths: Iterable, on_page: Optional[Callable[[SheetResult], None]] = None) -> BatchResult:
        """Process several files. Unreadable files are listed, not raised."""
        batch = BatchResult()
        for path in paths:
            path = Path(path)
            try:
                batch.extend(self.process_file(path, on_page=on_page))
            except (DocumentDecodeError, ProcessingTimeoutError) as e:
                logger.warning("%s: %s", path.name, e)
                batch.failed_files.append((path.name, str(e)))
        return batch

    def _rasterize(self, data: bytes, mime_type: Optional[str]) -> List[RasterImage]:
        if self.page_timeout is None:
            return self.rasterizer.rasterize(data, mime_type)

        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(self.rasterizer.rasterize, data, mime_type)
            return future.result(timeout=self.page_timeout)
        except FuturesTimeoutError:
            self._abandon(future, "rasterizing")
            raise ProcessingTimeoutError(
                f"Reading the document took longer than {self.page_timeout:g} seconds"
            ) from None
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _collect(self, future, page_number, source, deadline) -> SheetResult:
        timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            logger.warning("%s page %s: timed out after %ss", source, page_number, self.page_timeout)
            self._abandon(future, f"{source} page {page_number}")
            return self._failed_result(FailureReason.TIMEOUT.value, page_number, source)
        except Exception as e:
            logger.exception("%s page %s: processing failed", source, page_number)
            return self._failed_result(f"{FailureReason.PROCESSING_FAILED.value}: {e}", page_number, source)

    def _failed_result(self, reason: str, page_number: Optional[int], source: Optional[str]) -> SheetResult:
        return SheetResult(
            identity=StudentIdentity(),
            answers=("",) * self.template.question_count,
            quality=None,
            is_valid=False,
            page_number=page_number,
            failure_reason=reason,
            source=source,
        )
