"""OCR engine wrappers for card text recognition.

Two engines are supported behind the same ``recognize`` interface:

- ``TesseractEngine``: pytesseract with the Thai language pack (default)
- ``RapidOCREngine``: RapidOCR (PaddleOCR ONNX backend), lazy-loaded

Both return text grouped into lines with a per-line confidence so that the
field parser can weigh each field by how sure the engine was about the line
it came from. Failures raise ``OCREngineError``; the engine object stays
usable for the next call.

Example:
    >>> from cardscan.ocr import create_engine
    >>> from cardscan.common.config_loader import OCREngineConfig
    >>> engine = create_engine(OCREngineConfig(type="tesseract", lang="tha"))
    >>> result = engine.recognize(binary_card)
    >>> print(result.text, result.confidence)
"""

import logging
from typing import Callable, Dict, List, Optional, Protocol, Tuple

import cv2
import numpy as np
import pytesseract

from cardscan.common.config_loader import OCREngineConfig
from cardscan.common.errors import OCREngineError

from .types import OCREngineResult, OCRLine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class OCREngine(Protocol):
    """Interface the pipeline expects from an OCR engine."""

    def recognize(
        self, image: np.ndarray, progress_callback: Optional[ProgressCallback] = None
    ) -> OCREngineResult:
        ...

    def close(self) -> None:
        ...


def _report(progress_callback: Optional[ProgressCallback], fraction: float) -> None:
    if progress_callback is not None:
        progress_callback(fraction)


def _to_engine_image(image: np.ndarray) -> np.ndarray:
    """Validate and convert to a 2D grayscale or 3-channel image."""
    if image is None or image.size == 0:
        raise OCREngineError("Invalid image: empty or None")
    if image.ndim == 3 and image.shape[2] == 1:
        return image[:, :, 0]
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if image.ndim not in (2, 3):
        raise OCREngineError(f"Invalid image shape: {image.shape}")
    return image


def _result_from_lines(lines: List[OCRLine]) -> OCREngineResult:
    if not lines:
        return OCREngineResult.empty()
    confidence = float(np.mean([line.confidence for line in lines]))
    return OCREngineResult(
        text="\n".join(line.text for line in lines),
        confidence=confidence,
        lines=tuple(lines),
        success=True,
    )


class TesseractEngine:
    """Wrapper for Tesseract OCR configured for Thai ID cards.

    Args:
        config: OCR engine configuration (language, page segmentation mode).

    Raises:
        OCREngineError: If the Tesseract binary is not available.

    Example:
        >>> engine = TesseractEngine(OCREngineConfig(lang="tha"))
        >>> result = engine.recognize(cv2.imread("card_binary.png", cv2.IMREAD_GRAYSCALE))
        >>> for line in result.lines:
        ...     print(f"{line.text} ({line.confidence:.2f})")
    """

    def __init__(self, config: OCREngineConfig):
        self.config = config

        # Verify Tesseract is available
        try:
            version = pytesseract.get_tesseract_version()
            logger.info(f"Tesseract engine initialized: version {version}, lang={config.lang}")
        except Exception as e:
            logger.error(f"Tesseract not found or not properly configured: {e}")
            raise OCREngineError(
                "Tesseract not available. Please install Tesseract OCR with the Thai "
                "language pack.\n"
                "Linux: sudo apt-get install tesseract-ocr tesseract-ocr-tha\n"
                "MacOS: brew install tesseract tesseract-lang"
            ) from e

    def recognize(
        self,
        image: np.ndarray,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> OCREngineResult:
        """Recognize text lines in a (preferably binarized) card image.

        Args:
            image: Grayscale or BGR image.
            progress_callback: Receives fractional completion (0.0-1.0).

        Returns:
            OCREngineResult with one entry per recognized line.

        Raises:
            OCREngineError: If the image is invalid or Tesseract fails.
        """
        image = _to_engine_image(image)
        _report(progress_callback, 0.0)

        tesseract_config = f"--psm {self.config.psm}"
        logger.debug(f"Running Tesseract lang={self.config.lang}, config: {tesseract_config}")

        try:
            data = pytesseract.image_to_data(
                image,
                lang=self.config.lang,
                config=tesseract_config,
                output_type=pytesseract.Output.DICT,
            )
        except Exception as e:
            logger.error(f"Tesseract extraction failed: {e}", exc_info=True)
            raise OCREngineError(f"Tesseract extraction failed: {e}") from e

        _report(progress_callback, 0.9)
        lines = self._group_lines(data)
        _report(progress_callback, 1.0)

        result = _result_from_lines(lines)
        if result.success:
            logger.debug(
                f"Tesseract extraction successful: {len(lines)} lines, "
                f"confidence={result.confidence:.2f}"
            )
        else:
            logger.warning("Tesseract returned no valid detections")
        return result

    def _group_lines(self, data: Dict[str, list]) -> List[OCRLine]:
        """Join words sharing (block, paragraph, line) numbers into lines."""
        groups: Dict[Tuple[int, int, int], List[Tuple[int, str, float]]] = {}
        for i in range(len(data["text"])):
            text = str(data["text"][i]).strip()
            conf = float(data["conf"][i])
            # conf < 0 marks layout rows without recognized text
            if not text or conf < 0 or conf < self.config.min_line_confidence:
                continue
            key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
            groups.setdefault(key, []).append((int(data["left"][i]), text, conf))

        lines = []
        for key in sorted(groups):
            words = sorted(groups[key])
            lines.append(
                OCRLine(
                    text=" ".join(w[1] for w in words),
                    confidence=float(np.mean([w[2] for w in words])) / 100.0,
                )
            )
        return lines

    def close(self) -> None:
        """Tesseract runs as a subprocess per call; nothing to release."""


class RapidOCREngine:
    """Wrapper for RapidOCR.

    Args:
        config: OCR engine configuration.

    Note:
        The actual RapidOCR engine is lazy-loaded on first use to avoid
        loading ONNX models if the engine is never called.
    """

    def __init__(self, config: OCREngineConfig):
        self.config = config
        self._engine: Optional[object] = None  # Lazy-loaded

        logger.info(
            f"RapidOCREngine initialized: use_gpu={config.use_gpu}, "
            f"text_score={config.text_score}"
        )

    @property
    def engine(self):
        """Lazy-load RapidOCR engine on first access.

        Raises:
            OCREngineError: If rapidocr_onnxruntime is missing or fails to load.
        """
        if self._engine is None:
            try:
                from rapidocr_onnxruntime import RapidOCR

                self._engine = RapidOCR(
                    use_angle_cls=self.config.use_angle_cls,
                    use_gpu=self.config.use_gpu,
                    text_score=self.config.text_score,
                    use_space_char=True,
                )
                logger.info("RapidOCR engine loaded")
            except ImportError as e:
                logger.error(
                    "Failed to import rapidocr_onnxruntime. "
                    "Install with: pip install rapidocr-onnxruntime"
                )
                raise OCREngineError("rapidocr-onnxruntime not installed") from e
            except Exception as e:
                logger.error(f"Failed to initialize RapidOCR engine: {e}")
                raise OCREngineError(f"RapidOCR initialization failed: {e}") from e

        return self._engine

    def recognize(
        self,
        image: np.ndarray,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> OCREngineResult:
        """Recognize text regions and return them top-to-bottom as lines.

        Raises:
            OCREngineError: If the image is invalid or inference fails.
        """
        image = _to_engine_image(image)
        _report(progress_callback, 0.0)

        try:
            # RapidOCR returns (results_list, timing_info); each result is
            # [bbox, text, confidence]
            output = self.engine(image)
        except OCREngineError:
            raise
        except Exception as e:
            logger.error(f"RapidOCR extraction failed: {e}", exc_info=True)
            raise OCREngineError(f"RapidOCR extraction failed: {e}") from e

        _report(progress_callback, 1.0)

        results = output[0] if isinstance(output, tuple) and output else None
        if not results:
            logger.warning("RapidOCR returned no text detections")
            return OCREngineResult.empty()

        # Reading order: top edge of each box, then left edge
        ordered = sorted(results, key=lambda r: (min(p[1] for p in r[0]), min(p[0] for p in r[0])))
        lines = [
            OCRLine(text=str(text).strip(), confidence=float(score))
            for _, text, score in ordered
            if str(text).strip()
        ]
        return _result_from_lines(lines)

    def close(self) -> None:
        self._engine = None


def create_engine(config: OCREngineConfig) -> OCREngine:
    """Build the engine named by ``config.type``.

    Raises:
        ValueError: If the engine type is unknown.
    """
    engine_type = config.type.lower()
    if engine_type == "tesseract":
        return TesseractEngine(config)
    if engine_type == "rapidocr":
        return RapidOCREngine(config)
    raise ValueError(f"Unknown OCR engine type: {config.type!r} (expected 'tesseract' or 'rapidocr')")
