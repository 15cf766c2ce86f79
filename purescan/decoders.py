"""
Decode backends: frame in, candidate barcode strings out.

Two interchangeable implementations:
- NativeDecoder uses the barcode detector built into OpenCV when the runtime has it
- FallbackDecoder uses pyzbar (zbar) on a few enhanced copies of the frame
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

# Computer Vision
try:
    import cv2
    CV_AVAILABLE = True
except ImportError:
    CV_AVAILABLE = False

try:
    from pyzbar import pyzbar
    from pyzbar.pyzbar import ZBarSymbol
    PYZBAR_AVAILABLE = True
except ImportError:
    PYZBAR_AVAILABLE = False

from purescan.checksum import classify_symbology
from purescan.config import Config

logger = logging.getLogger(__name__)


class DecoderUnavailableError(RuntimeError):
    """No usable decode backend on this runtime"""


def enhance_frame(frame: np.ndarray) -> np.ndarray:
    """Grayscale + CLAHE contrast enhancement for barcode detection"""
    if len(frame.shape) == 3:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    else:
        gray = frame.copy()

    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    return clahe.apply(gray)


class DecodeBackend(ABC):
    """Uniform interface over a barcode decoder"""

    name = "base"

    @classmethod
    @abstractmethod
    def is_available(cls) -> bool:
        ...

    @abstractmethod
    def _decode(self, frame: np.ndarray) -> List[str]:
        ...

    def decode(self, frame: Optional[np.ndarray]) -> List[str]:
        """
        Decode candidate codes from a single frame

        Failures on a frame are decode noise: they are logged and
        an empty list is returned.
        """
        if frame is None or frame.size == 0:
            return []
        try:
            codes = self._decode(frame)
        except Exception as e:
            logger.debug(f"{self.name} decode failed on frame: {e}")
            return []

        for code in codes:
            logger.debug(f"{self.name} read {code} ({classify_symbology(code).value})")
        return codes


class NativeDecoder(DecodeBackend):
    """OpenCV's built-in 1D barcode detector"""

    name = "native"

    def __init__(self):
        if not self.is_available():
            raise DecoderUnavailableError("OpenCV barcode detector not available")
        try:
            self.detector = cv2.barcode.BarcodeDetector()
        except cv2.error as e:
            raise DecoderUnavailableError(f"OpenCV barcode detector failed to load: {e}") from e

    @classmethod
    def is_available(cls) -> bool:
        return CV_AVAILABLE and hasattr(cv2, 'barcode') and hasattr(cv2.barcode, 'BarcodeDetector')

    def _decode(self, frame: np.ndarray) -> List[str]:
        ok, decoded_info, _points, _straight = self.detector.detectAndDecodeMulti(frame)
        if not ok:
            return []
        return [code for code in decoded_info if code]


class FallbackDecoder(DecodeBackend):
    """Software decoding with pyzbar"""

    name = "fallback"

    def __init__(self):
        if not self.is_available():
            raise DecoderUnavailableError("pyzbar not available")
        self.symbols = [ZBarSymbol.EAN13, ZBarSymbol.UPCA, ZBarSymbol.EAN8]

    @classmethod
    def is_available(cls) -> bool:
        return PYZBAR_AVAILABLE

    def _variants(self, frame: np.ndarray):
        yield frame
        if CV_AVAILABLE:
            yield enhance_frame(frame)
            yield cv2.GaussianBlur(frame, (5, 5), 0)

    def _decode(self, frame: np.ndarray) -> List[str]:
        # Try multiple preprocessing techniques, stop at the first that reads
        for variant in self._variants(frame):
            barcodes = pyzbar.decode(variant, symbols=self.symbols)
            if barcodes:
                return [barcode.data.decode('utf-8') for barcode in barcodes]
        return []


def select_backend(preference: str = Config.DECODER_PREFERENCE) -> DecodeBackend:
    """
    Pick the decode backend for a session

    "native" prefers the runtime's detector and falls back to pyzbar,
    "fallback" always uses pyzbar.
    """
    candidates = [FallbackDecoder]
    if preference != 'fallback':
        candidates.insert(0, NativeDecoder)

    for backend_cls in candidates:
        if not backend_cls.is_available():
            continue
        try:
            backend = backend_cls()
        except DecoderUnavailableError as e:
            logger.warning(f"{backend_cls.name} decoder unusable: {e}")
            continue
        logger.info(f"Using {backend.name} barcode decoder")
        return backend

    raise DecoderUnavailableError("No barcode decoder available (install opencv-python or pyzbar)")
