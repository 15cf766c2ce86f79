"""
Scan acquisition state machine

Idle -> Initializing -> Active -> Stabilizing -> Resolving -> Idle on success,
Initializing/Active/Stabilizing -> Error -> Idle on camera or decoder failure,
and stop() from any state back to Idle with the camera released.
"""

import logging
import threading
from collections import Counter, deque
from enum import Enum
from typing import Callable, Iterable, Optional

import numpy as np

from purescan.camera import Camera, CameraError, OpenCVCamera
from purescan.checksum import InvalidBarcodeError, is_valid, normalize
from purescan.config import Config
from purescan.decoders import DecodeBackend, DecoderUnavailableError, select_backend
from purescan.lookup import LookupCancelledError, LookupClient, LookupFailedError, Resolution

logger = logging.getLogger(__name__)


class ScanState(Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    STABILIZING = "stabilizing"
    RESOLVING = "resolving"
    ERROR = "error"


class ScanSession:
    """
    Per-session stability filter.

    A raw read is accepted once it occurs at least `threshold` times among the
    last `window` reads and then passes checksum validation.
    """

    def __init__(self, backend: DecodeBackend, window: int = None, threshold: int = None):
        self.backend = backend
        self.window = window or Config.STABILITY_WINDOW
        self.threshold = threshold or Config.STABILITY_THRESHOLD
        self.history = deque(maxlen=self.window)
        self.stability = 0
        self.frames = 0

    def push(self, raw: str) -> Optional[str]:
        """Record one raw read; return the validated code once it is stable"""
        self.history.append(raw)
        self.stability = Counter(self.history)[raw]

        if self.stability < self.threshold:
            return None

        code = normalize(raw)
        if not is_valid(code):
            logger.debug(f"Discarding stable read with bad checksum: {raw}")
            return None
        return code

    def feed(self, frame: np.ndarray) -> Optional[str]:
        """Decode one frame and push every candidate it yields"""
        self.frames += 1
        for raw in self.backend.decode(frame):
            code = self.push(raw)
            if code:
                return code
        return None


class ScanController:
    """
    Owns the camera and at most one scan session at a time.

    Resolved lookups are handed to `on_resolved` (navigation), failures to
    `on_error`; both are reported after the machine is back in IDLE.
    """

    def __init__(self,
                 lookup_client: LookupClient,
                 camera_factory: Callable[[], Camera] = OpenCVCamera,
                 backend_factory: Callable[[], DecodeBackend] = select_backend,
                 on_resolved: Optional[Callable[[Resolution], None]] = None,
                 on_error: Optional[Callable[[Exception], None]] = None,
                 on_state_change: Optional[Callable[[ScanState, ScanState], None]] = None,
                 window: int = None,
                 threshold: int = None):
        self.lookup_client = lookup_client
        self.camera_factory = camera_factory
        self.backend_factory = backend_factory
        self.on_resolved = on_resolved
        self.on_error = on_error
        self.on_state_change = on_state_change
        self.window = window
        self.threshold = threshold

        self.state = ScanState.IDLE
        self.session: Optional[ScanSession] = None
        self.camera: Optional[Camera] = None
        self.last_error: Optional[Exception] = None

        # serializes frame processing against stop()
        self._frame_lock = threading.RLock()
        self._stop_requested = threading.Event()
        # bumped by stop(); a lookup started under an older value is discarded
        self._generation = 0

    def _set_state(self, state: ScanState):
        old, self.state = self.state, state
        if old is not state:
            logger.info(f"Scan state: {old.value} -> {state.value}")
            if self.on_state_change:
                self.on_state_change(old, state)

    def _release_camera(self):
        if self.camera is not None:
            self.camera.release()
            self.camera = None

    def _fail(self, error: Exception):
        logger.error(f"Scan session failed: {error}")
        self.last_error = error
        self._release_camera()
        self.session = None
        self._set_state(ScanState.ERROR)
        self._set_state(ScanState.IDLE)
        if self.on_error:
            self.on_error(error)

    @property
    def active(self) -> bool:
        return self.state is not ScanState.IDLE

    def start(self) -> bool:
        """
        Start a new scan session, stopping any previous one first

        Returns:
            True when the machine reached ACTIVE
        """
        if self.active:
            self.stop()

        self._stop_requested.clear()
        self.last_error = None
        self._set_state(ScanState.INITIALIZING)

        try:
            camera = self.camera_factory()
            camera.open()
            self.camera = camera
            backend = self.backend_factory()
        except (CameraError, DecoderUnavailableError) as e:
            self._fail(e)
            return False

        self.session = ScanSession(backend, window=self.window, threshold=self.threshold)
        self._set_state(ScanState.ACTIVE)
        return True

    def process_frame(self, frame: np.ndarray) -> Optional[str]:
        """
        Feed one frame to the active session

        Returns:
            the validated code when this frame made it stable, else None
        """
        with self._frame_lock:
            if self.state is not ScanState.ACTIVE or self._stop_requested.is_set():
                return None

            code = self.session.feed(frame)
            if code is None:
                return None

            self._set_state(ScanState.STABILIZING)
            logger.info(f"Stable barcode {code} after {self.session.frames} frames")
            # no more frames once a code is accepted
            self._release_camera()
            return code

    def _next_frame(self) -> Optional[np.ndarray]:
        with self._frame_lock:
            if self.camera is None or self._stop_requested.is_set():
                return None
            return self.camera.read()

    def run(self, max_frames: Optional[int] = None) -> Optional[Resolution]:
        """
        Cooperative decode loop for the active session

        Returns:
            the Resolution on success, None when stopped, failed or out of frames
        """
        if self.state is not ScanState.ACTIVE:
            return None

        processed = 0
        code = None
        while code is None:
            if self._stop_requested.is_set() or self.state is not ScanState.ACTIVE:
                return None
            if max_frames is not None and processed >= max_frames:
                return None

            try:
                frame = self._next_frame()
            except CameraError as e:
                self._fail(e)
                return None

            processed += 1
            if frame is None:
                continue
            code = self.process_frame(frame)

        return self.resolve(code)

    def scan_frames(self, frames: Iterable[np.ndarray]) -> Optional[Resolution]:
        """Drive the active session from an iterable of frames instead of the camera"""
        for frame in frames:
            if self.state is not ScanState.ACTIVE:
                return None
            code = self.process_frame(frame)
            if code:
                return self.resolve(code)
        return None

    def resolve(self, code: str) -> Optional[Resolution]:
        """Hand a validated code to the lookup client, exactly once"""
        generation = self._generation
        self._set_state(ScanState.RESOLVING)
        try:
            resolution = self.lookup_client.resolve(code)
        except LookupCancelledError:
            logger.info(f"Lookup for {code} cancelled")
            self._finish(generation)
            return None
        except (LookupFailedError, InvalidBarcodeError) as e:
            logger.error(f"Lookup for {code} failed: {e}")
            if not self._finish(generation):
                return None
            self.last_error = e
            if self.on_error:
                self.on_error(e)
            return None

        if not self._finish(generation):
            logger.info(f"Discarding lookup result for {code}, scan was stopped")
            return None

        if self.on_resolved:
            self.on_resolved(resolution)
        return resolution

    def _finish(self, generation: int) -> bool:
        """End the session after a lookup; False if stop() already ended it"""
        if generation != self._generation or self._stop_requested.is_set():
            return False
        self.session = None
        self._set_state(ScanState.IDLE)
        return True

    def submit_manual(self, raw: str) -> Optional[Resolution]:
        """
        Resolve a typed barcode, bypassing camera and decoder

        Raises:
            InvalidBarcodeError: input does not normalize to a valid EAN-13
        """
        code = normalize(raw)
        if not is_valid(code):
            raise InvalidBarcodeError(f"Invalid barcode: {raw!r}")

        if self.active:
            self.stop()
        self._stop_requested.clear()
        self.last_error = None
        return self.resolve(code)

    def stop(self):
        """Cancel the loop and any lookup, release the camera, return to IDLE"""
        self._stop_requested.set()
        self._generation += 1
        self.lookup_client.cancel()

        # waits for an in-progress frame to finish before releasing
        with self._frame_lock:
            self._release_camera()
            self.session = None
            self._set_state(ScanState.IDLE)
