"""Text recognition fallback for pages where no bubble was detected.

When the bubble pass finds nothing at all, the grid geometry probably does not
match the page (wrong template, typed answer sheet, ...). The whole page is
then run through Tesseract and lines such as ``12 B`` are read as answers.
This path is far less reliable than bubble detection and is never used to
fill gaps in a partially detected sheet.
"""
import logging
import re
from typing import Callable, Tuple

import pytesseract
from PIL import Image

from .errors import NoSignalError
from .raster import RasterImage

logger = logging.getLogger(__name__)


def tesseract_text(image: Image.Image) -> str:
    return pytesseract.image_to_string(image, lang="eng")


def extract_answers_from_text(text: str, question_count: int, option_letters: str = "ABCD") -> Tuple[str, ...]:
    """Read ``<question number> <option>`` pairs from recognized text.

    Question numbers outside 1..question_count are ignored. A later match for
    the same question replaces an earlier one.
    """
    pattern = re.compile(rf"(\d+)\s*([{option_letters}])", re.IGNORECASE)
    answers = [""] * question_count

    for line in text.splitlines():
        for match in pattern.finditer(line):
            question = int(match.group(1))
            if 1 <= question <= question_count:
                answers[question - 1] = match.group(2).upper()

    return tuple(answers)


class TextFallbackRecognizer:
    """Full-page OCR answer reader.

    Args:
        ocr: Callable returning the text of a PIL image; Tesseract by default
    """

    def __init__(self, ocr: Callable[[Image.Image], str] = tesseract_text):
        self.ocr = ocr

    def recognize(self, image: RasterImage, question_count: int, option_letters: str = "ABCD") -> Tuple[str, ...]:
        """Return an answer record of ``question_count`` entries.

        Raises:
            NoSignalError: If the OCR engine is missing or fails on the page
        """
        pil_image = Image.fromarray(image.rgba[:, :, :3].copy())
        try:
            text = self.ocr(pil_image)
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError) as e:
            raise NoSignalError(f"Text recognition failed: {e}") from e

        answers = extract_answers_from_text(text, question_count, option_letters)
        logger.info("Text fallback read %d answers on page %d",
                    sum(1 for a in answers if a), image.page_index + 1)
        return answers
