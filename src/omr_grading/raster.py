"""Turn uploaded documents into one RGBA raster per page.

PDF pages are rendered with PyMuPDF at a fixed upscaling factor so that the
bubbles stay large enough to sample reliably. Image files are decoded through
a pluggable ``decode_image`` capability; the default one uses OpenCV.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import cv2
import fitz  # PyMuPDF
import numpy as np

from .common.config import PDF_SCALE
from .common.validators import mime_type_for
from .errors import DocumentDecodeError

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
IMAGE_MIME_TYPES = ("image/jpeg", "image/png", "image/bmp")


@dataclass(frozen=True)
class PixelBuffer:
    width: int
    height: int
    rgba: np.ndarray  # (height, width, 4) uint8


@dataclass(frozen=True)
class RasterImage:
    """Decoded page. The pixel array is read-only once constructed."""
    width: int
    height: int
    rgba: np.ndarray
    page_index: int = 0

    def __post_init__(self):
        if self.rgba.shape != (self.height, self.width, 4):
            raise ValueError(f"Expected pixel array of shape {(self.height, self.width, 4)}, got {self.rgba.shape}")
        self.rgba.setflags(write=False)

    @classmethod
    def from_array(cls, pixels: np.ndarray, page_index: int = 0) -> "RasterImage":
        """Wrap a copy of an RGB, RGBA or grayscale array (height, width[, channels])."""
        pixels = np.array(pixels, dtype=np.uint8)
        if pixels.ndim == 3 and pixels.shape[2] == 3:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_RGB2RGBA)
        elif pixels.ndim == 2:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2RGBA)
        pixels = np.ascontiguousarray(pixels)
        height, width = pixels.shape[:2]
        return cls(width=width, height=height, rgba=pixels, page_index=page_index)

    def grayscale(self) -> np.ndarray:
        """Float grayscale as (R+G+B)/3, alpha ignored."""
        return self.rgba[:, :, :3].astype(np.float64).mean(axis=2)

    def to_bgr(self) -> np.ndarray:
        return cv2.cvtColor(self.rgba, cv2.COLOR_RGBA2BGR)


def decode_image(data: bytes) -> PixelBuffer:
    """Decode JPEG/PNG/BMP bytes with OpenCV.

    Raises:
        DocumentDecodeError: If OpenCV cannot parse the bytes
    """
    if not data:
        raise DocumentDecodeError()

    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise DocumentDecodeError()

    if image.dtype != np.uint8:
        # 16-bit PNGs
        image = (image / 257).astype(np.uint8)

    if image.ndim == 2:
        rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    elif image.shape[2] == 4:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    else:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)

    height, width = rgba.shape[:2]
    return PixelBuffer(width=width, height=height, rgba=rgba)


class PageRasterizer:
    """Produce one RasterImage per page of a PDF or image document.

    Args:
        scale: Upscaling factor applied when rendering PDF pages
        decoder: Callable turning image bytes into a PixelBuffer
    """

    def __init__(self, scale: float = PDF_SCALE, decoder: Callable[[bytes], PixelBuffer] = decode_image):
        self.scale = scale
        self.decoder = decoder

    def rasterize(self, data: bytes, mime_type: Optional[str] = None) -> List[RasterImage]:
        """Rasterize a document held in memory.

        Args:
            data: Raw file contents
            mime_type: Declared type; sniffed from the content when omitted

        Returns:
            Pages in document order. A single image gives exactly one page.

        Raises:
            DocumentDecodeError: If the bytes are not a readable PDF or image
        """
        if mime_type is None:
            mime_type = PDF_MIME_TYPE if data[:5] == b"%PDF-" else "image/png"

        if mime_type == PDF_MIME_TYPE:
            return self._rasterize_pdf(data)
        if mime_type in IMAGE_MIME_TYPES:
            buffer = self.decoder(data)
            return [RasterImage(width=buffer.width, height=buffer.height, rgba=buffer.rgba, page_index=0)]

        raise DocumentDecodeError(f"Unsupported file type '{mime_type}'. Please try a PDF, JPG, PNG or BMP file.")

    def rasterize_file(self, path) -> List[RasterImage]:
        path = Path(path)
        return self.rasterize(path.read_bytes(), mime_type_for(path))

    def _rasterize_pdf(self, data: bytes) -> List[RasterImage]:
        try:
            return self._render_pdf(data)
        except DocumentDecodeError:
            raise
        except Exception as e:
            raise DocumentDecodeError(
                "Failed to process PDF file. Please try uploading an image (JPG, PNG) instead."
            ) from e

    def _render_pdf(self, data: bytes) -> List[RasterImage]:
        pages = []
        matrix = fitz.Matrix(self.scale, self.scale)
        with fitz.open(stream=data, filetype="pdf") as document:
            if document.page_count == 0:
                raise DocumentDecodeError("The PDF file has no pages. Please try a different file.")

            for page_index in range(document.page_count):
                pix = document.load_page(page_index).get_pixmap(matrix=matrix, alpha=False)
                rgb = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, pix.n)
                pages.append(RasterImage.from_array(rgb[:, :, :3].copy(), page_index=page_index))
                logger.debug("Rendered page %d at %dx%d", page_index + 1, pix.width, pix.height)

        return pages
