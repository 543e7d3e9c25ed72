"""
OCR recognition engines for LiveRead.

Wraps PaddleOCR, EasyOCR and Tesseract behind one ``recognize_text`` call
that returns pixel-space tokens at a requested precision.
"""

import os
from typing import Any, List, Optional, Tuple

import numpy as np

from .utils import BoundingBox, Precision, RecognitionError, Token


# Minimum token height as a fraction of the image height
MIN_TEXT_HEIGHT = {
    Precision.FAST: 0.02,
    Precision.ACCURATE: 0.01,
}

TESSERACT_CONFIG = {
    Precision.FAST: "--oem 1 --psm 11",
    Precision.ACCURATE: "--oem 1 --psm 3",
}


class OCREngine:
    """Wrapper for OCR engines (PaddleOCR, EasyOCR, Tesseract)."""

    def __init__(
        self,
        engine_name: str = "easyocr",
        lang: str = "en",
        gpu: bool = False,
        backend: Any = None
    ):
        self.engine_name = engine_name.lower()
        self.lang = lang
        self.gpu = gpu
        self.engine = backend
        if self.engine is None:
            self._initialize_engine()

    def _initialize_engine(self):
        """Initialize the selected OCR engine."""
        if self.engine_name == "paddle":
            try:
                from paddleocr import PaddleOCR
                self.engine = PaddleOCR(
                    use_angle_cls=True,
                    lang=self.lang,
                    use_gpu=self.gpu,
                    show_log=False
                )
                print(f"[OCR] Initialized PaddleOCR (lang={self.lang})")
            except ImportError:
                print("[OCR] PaddleOCR not available, falling back to EasyOCR")
                self.engine_name = "easyocr"
                self._initialize_engine()

        elif self.engine_name == "easyocr":
            try:
                import easyocr
                self.engine = easyocr.Reader([self.lang], gpu=self.gpu, verbose=False)
                print(f"[OCR] Initialized EasyOCR (lang={self.lang})")
            except ImportError:
                print("[OCR] EasyOCR not available, falling back to Tesseract")
                self.engine_name = "tesseract"
                self._initialize_engine()

        elif self.engine_name == "tesseract":
            try:
                import pytesseract
                self.engine = pytesseract
                print("[OCR] Initialized Tesseract")
            except ImportError:
                raise RuntimeError("No OCR engine available. Install paddleocr, easyocr or pytesseract.")

        else:
            raise ValueError(f"Unknown OCR engine: {self.engine_name}")

    def __call__(self, image: np.ndarray, precision: Precision = Precision.FAST) -> List[Token]:
        return self.recognize_text(image, precision)

    def recognize_text(
        self,
        image: np.ndarray,
        precision: Precision = Precision.FAST
    ) -> List[Token]:
        """
        Detect and recognize text in an image.

        Args:
            image: BGR or grayscale image
            precision: FAST for live frames, ACCURATE for forced captures

        Returns:
            Tokens with pixel-space, top-left-origin boxes

        Raises:
            RecognitionError: If the underlying engine fails
        """
        if image is None or image.size == 0:
            return []

        precision = Precision(precision)

        try:
            if self.engine_name == "paddle":
                detections = self._detect_paddle(image, precision)
            elif self.engine_name == "easyocr":
                detections = self._detect_easyocr(image, precision)
            else:
                detections = self._detect_tesseract(image, precision)
        except Exception as e:
            raise RecognitionError(f"{self.engine_name} failed: {e}") from e

        min_height = MIN_TEXT_HEIGHT[precision] * image.shape[0]
        tokens = []
        for polygon, text, conf in detections:
            if not text or not text.strip():
                continue
            box = BoundingBox.from_polygon(polygon)
            if box.height < min_height:
                continue
            tokens.append(Token(text=text, box=box, confidence=float(conf)))

        return tokens

    def _detect_paddle(
        self,
        image: np.ndarray,
        precision: Precision
    ) -> List[Tuple[List[List[float]], str, float]]:
        """PaddleOCR detection and recognition."""
        results = []
        ocr_result = self.engine.ocr(image, cls=precision == Precision.ACCURATE)
        if ocr_result and ocr_result[0]:
            for item in ocr_result[0]:
                if item is None:
                    continue
                polygon = item[0]  # [[x1,y1], [x2,y2], [x3,y3], [x4,y4]]
                text, conf = item[1]
                results.append((polygon, text, conf))
        return results

    def _detect_easyocr(
        self,
        image: np.ndarray,
        precision: Precision
    ) -> List[Tuple[List[List[float]], str, float]]:
        """EasyOCR detection and recognition."""
        if precision == Precision.ACCURATE:
            options = dict(decoder="beamsearch", canvas_size=2560, mag_ratio=1.5)
        else:
            options = dict(decoder="greedy", canvas_size=1280, mag_ratio=1.0)

        # Word-level boxes so the line assembler controls row grouping
        ocr_result = self.engine.readtext(
            image,
            paragraph=False,
            width_ths=0.1,
            height_ths=0.5,
            **options
        )
        return [(item[0], item[1], item[2]) for item in ocr_result]

    def _detect_tesseract(
        self,
        image: np.ndarray,
        precision: Precision
    ) -> List[Tuple[List[List[float]], str, float]]:
        """Tesseract detection and recognition."""
        results = []
        data = self.engine.image_to_data(
            image,
            config=TESSERACT_CONFIG[precision],
            output_type=self.engine.Output.DICT
        )
        for i, text in enumerate(data['text']):
            if text.strip():
                x, y, w, h = data['left'][i], data['top'][i], data['width'][i], data['height'][i]
                raw_conf = float(data['conf'][i])
                conf = raw_conf / 100.0 if raw_conf >= 0 else 0.5
                polygon = [[x, y], [x + w, y], [x + w, y + h], [x, y + h]]
                results.append((polygon, text, conf))
        return results


def create_engine(engine_name: Optional[str] = None, lang: str = "en", gpu: bool = False) -> OCREngine:
    """Create an OCR engine, defaulting to the LIVEREAD_ENGINE environment variable."""
    name = engine_name or os.environ.get("LIVEREAD_ENGINE", "easyocr")
    return OCREngine(name, lang=lang, gpu=gpu)
