from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Tuple
import logging

import numpy as np

from ..entities import Point2D
from .point_tracker import PointTracker


class TrackingSession:
    """Owns the point tracker handle for one review session.

    The tracker cannot seek or patch its point set, so every change of the
    active points and every resume after a pause goes through ``restart``.
    """

    def __init__(self, tracker_factory: Callable[[], PointTracker]) -> None:
        self._log = logging.getLogger(__name__)
        self._factory = tracker_factory
        self._tracker: Optional[PointTracker] = None
        self._point_count: int = 0
        self._last_frame: Optional[int] = None
        self._stepped = False

    @property
    def is_active(self) -> bool:
        return self._tracker is not None

    @property
    def point_count(self) -> int:
        return self._point_count

    def start(self, points: Sequence[Point2D], image: np.ndarray, frame: Optional[int] = None) -> None:
        self.close()
        tracker = self._factory()
        tracker.initialize([(float(x), float(y)) for x, y in points], image)
        self._tracker = tracker
        self._point_count = len(points)
        self._last_frame = frame
        self._stepped = False
        self._log.debug("start: %d points at frame %s", self._point_count, frame)

    def restart(self, points: Sequence[Point2D], image: np.ndarray, frame: Optional[int] = None) -> None:
        self.start(points, image, frame)

    def step(
        self, image: np.ndarray, frame: Optional[int] = None
    ) -> Tuple[List[Point2D], List[bool], List[float]]:
        if self._tracker is None:
            raise RuntimeError("Tracking session has not been started.")
        if frame is not None and self._last_frame is not None:
            # The first step may reuse the initialization frame.
            if frame < self._last_frame or (self._stepped and frame == self._last_frame):
                raise ValueError(f"Tracker frames must increase (frame {frame} after {self._last_frame})")
        points, valid, confidence = self._tracker.step(image)
        self._stepped = True
        if frame is not None:
            self._last_frame = frame
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        valid = np.asarray(valid, dtype=bool).reshape(-1)
        confidence = np.asarray(confidence, dtype=np.float64).reshape(-1)
        if not len(points) == len(valid) == len(confidence) == self._point_count:
            raise ValueError(
                f"Tracker returned {len(points)} points for {self._point_count} initialized points"
            )
        return (
            [(float(x), float(y)) for x, y in points],
            [bool(v) for v in valid],
            [float(c) for c in confidence],
        )

    def close(self) -> None:
        if self._tracker is not None:
            self._tracker.release()
        self._tracker = None
        self._point_count = 0
        self._last_frame = None
        self._stepped = False
