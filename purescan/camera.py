"""
Camera capability used by the scan session
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

try:
    import cv2
    CV_AVAILABLE = True
except ImportError:
    CV_AVAILABLE = False

from purescan.config import Config

logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    """Camera could not be acquired for the session"""


class CameraUnavailableError(CameraError):
    """No capture device or no capture support on this runtime"""


class CameraPermissionError(CameraError):
    """A device exists but refuses to deliver frames"""


class Camera(ABC):
    """Exclusively owned frame source"""

    @abstractmethod
    def open(self) -> None:
        ...

    @abstractmethod
    def read(self) -> Optional[np.ndarray]:
        """Next frame, or None when no frame is ready"""

    @abstractmethod
    def release(self) -> None:
        ...

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


class OpenCVCamera(Camera):
    """cv2.VideoCapture backed camera, rear-facing device first"""

    def __init__(self, device_indices: Optional[List[int]] = None):
        indices = list(device_indices or Config.CAMERA_INDICES)
        rear = Config.REAR_CAMERA_INDEX
        if rear in indices:
            indices.remove(rear)
        self.device_indices = [rear] + indices
        self.device_index = None
        self.max_failed_reads = Config.MAX_FAILED_READS
        self._failed_reads = 0
        self._capture = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> None:
        if not CV_AVAILABLE:
            raise CameraUnavailableError("OpenCV is not installed, no capture support")

        refused = []
        for index in self.device_indices:
            capture = cv2.VideoCapture(index)
            if not capture.isOpened():
                capture.release()
                continue

            ok, _ = capture.read()
            if not ok:
                refused.append(index)
                capture.release()
                continue

            self._capture = capture
            self.device_index = index
            self._failed_reads = 0
            logger.info(f"Camera {index} acquired")
            return

        if refused:
            raise CameraPermissionError(f"Camera access denied for devices {refused}")
        raise CameraUnavailableError(f"No camera found on devices {self.device_indices}")

    def read(self) -> Optional[np.ndarray]:
        if self._capture is None:
            raise CameraError("Camera is not open")
        ok, frame = self._capture.read()
        if ok:
            self._failed_reads = 0
            return frame

        self._failed_reads += 1
        if self._failed_reads >= self.max_failed_reads:
            raise CameraError(f"Camera {self.device_index} stopped delivering frames")
        return None

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            logger.info(f"Camera {self.device_index} released")
        self._capture = None
        self.device_index = None
