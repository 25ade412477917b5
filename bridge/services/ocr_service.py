import asyncio
import io
from typing import Any, Optional, Protocol

from bridge.errors import ExtractionError
from bridge.logging_config import get_logger

logger = get_logger("ocr_service")


class OCRAdapter(Protocol):
    name: str

    def extract_text(self, image_bytes: bytes) -> str:
        ...


class TesseractOCR:
    """Tesseract OCR via pytesseract, English and Hindi by default."""

    name = "tesseract"

    def __init__(self, lang: str = "eng+hin", tesseract_cmd: Optional[str] = None, page_seg_mode: int = 6):
        self.lang = lang
        self.page_seg_mode = page_seg_mode
        self._pytesseract: Any = None
        self._image_module: Any = None
        self._load_dependency(tesseract_cmd)

    def _load_dependency(self, tesseract_cmd: Optional[str]) -> None:
        try:
            import pytesseract
            from PIL import Image
        except ImportError as e:
            raise ExtractionError(
                "Tesseract OCR requires pytesseract and Pillow (pip install 'wa-bridge[ocr]')"
            ) from e
        self._pytesseract = pytesseract
        self._image_module = Image
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def extract_text(self, image_bytes: bytes) -> str:
        with self._image_module.open(io.BytesIO(image_bytes)) as image:
            text = self._pytesseract.image_to_string(
                image,
                lang=self.lang,
                config=f"--psm {self.page_seg_mode}",
            )
        return (text or "").strip()


async def read_image_text(adapter: Optional[OCRAdapter], image_bytes: bytes) -> str:
    """Run OCR off the event loop. Raises ExtractionError when nothing could be read."""
    if adapter is None:
        raise ExtractionError("OCR is not configured")
    try:
        text = await asyncio.to_thread(adapter.extract_text, image_bytes)
    except ExtractionError:
        raise
    except Exception as e:
        logger.error(f"OCR failed: {e}", exc_info=True)
        raise ExtractionError(str(e)) from e

    text = (text or "").strip()
    if not text:
        raise ExtractionError("No text found in image")
    logger.info(f"OCR extracted {len(text)} chars")
    return text
