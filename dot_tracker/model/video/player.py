from dataclasses import dataclass
from typing import Optional, Tuple
import logging
import math

import cv2
import numpy as np

from ..errors import CannotOpenSource


@dataclass
class VideoMetadata:
    frame_count: int
    fps: float
    frame_size: Tuple[int, int]


class VideoPlayer:
    """Frame source over ``cv2.VideoCapture`` with 1-based frame numbers."""

    def __init__(self) -> None:
        self._log = logging.getLogger(__name__)
        self._capture: Optional[cv2.VideoCapture] = None
        self._metadata = VideoMetadata(frame_count=0, fps=30.0, frame_size=(0, 0))
        self._next_frame: Optional[int] = None
        self.path: Optional[str] = None

    @classmethod
    def open(cls, path: str) -> "VideoPlayer":
        player = cls()
        player.load(path)
        return player

    def load(self, path: str) -> VideoMetadata:
        self.release()
        capture = cv2.VideoCapture(str(path))
        if not capture.isOpened():
            capture.release()
            raise CannotOpenSource(str(path))

        try:
            if hasattr(cv2, "CAP_PROP_HW_ACCELERATION") and hasattr(cv2, "VIDEO_ACCELERATION_ANY"):
                capture.set(cv2.CAP_PROP_HW_ACCELERATION, cv2.VIDEO_ACCELERATION_ANY)
        except cv2.error:
            self._log.debug("Hardware decoding not available for %s", path)

        fps = float(capture.get(cv2.CAP_PROP_FPS) or 0.0)
        fps = fps if fps > 0 else 30.0
        frame_count = int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        # Trust the container duration when it reports one.
        duration_ms = 0.0
        if hasattr(cv2, "CAP_PROP_DURATION_MSEC"):
            duration_ms = float(capture.get(cv2.CAP_PROP_DURATION_MSEC) or 0.0)
        if duration_ms > 0:
            frame_count = int(math.floor(duration_ms / 1000.0 * fps))
        if frame_count <= 0:
            capture.release()
            raise CannotOpenSource(str(path), "no frames")
        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))

        self._capture = capture
        self._metadata = VideoMetadata(frame_count=frame_count, fps=fps, frame_size=(width, height))
        self._next_frame = 1
        self.path = str(path)
        self._log.info("Opened %s: %d frames at %.3f fps (%dx%d)", path, frame_count, fps, width, height)
        return self._metadata

    @property
    def metadata(self) -> VideoMetadata:
        return self._metadata

    @property
    def frame_count(self) -> int:
        return self._metadata.frame_count

    @property
    def frame_rate(self) -> float:
        return self._metadata.fps

    def is_loaded(self) -> bool:
        return self._capture is not None

    def get_frame(self, frame_number: int) -> np.ndarray:
        if not self._capture:
            raise RuntimeError("No movie is open.")
        if not 1 <= frame_number <= self._metadata.frame_count:
            raise IndexError(f"Frame {frame_number} outside 1..{self._metadata.frame_count}")
        if self._next_frame != frame_number:
            self._capture.set(cv2.CAP_PROP_POS_FRAMES, frame_number - 1)
        success, frame = self._capture.read()
        if not success or frame is None:
            self._next_frame = None
            raise IOError(f"Unable to read frame {frame_number} from {self.path}")
        self._next_frame = frame_number + 1
        return frame

    def release(self) -> None:
        if self._capture:
            self._capture.release()
        self._capture = None
        self._next_frame = None
        self._metadata = VideoMetadata(frame_count=0, fps=30.0, frame_size=(0, 0))

    def __enter__(self) -> "VideoPlayer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.release()
        return False
