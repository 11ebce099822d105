from __future__ import annotations

# Pyramidal Lucas-Kanade point tracker with a forward-backward consistency
# check. A point is reported invalid once it fails the check and stays invalid
# until the tracker is initialized again.

from typing import Optional, Protocol, Sequence, Tuple
import logging

import cv2
import numpy as np

from ..entities import Point2D
from ..settings import TrackingSettings

StepResult = Tuple[np.ndarray, np.ndarray, np.ndarray]


class PointTracker(Protocol):
    def initialize(self, points: Sequence[Point2D], image: np.ndarray) -> None:
        ...

    def step(self, image: np.ndarray) -> StepResult:
        ...

    def release(self) -> None:
        ...


def _to_gray8(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3:
        if image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        elif image.shape[2] == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            image = image[:, :, 0]
    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)
    return image


class LucasKanadePointTracker:
    def __init__(self, settings: Optional[TrackingSettings] = None) -> None:
        self._log = logging.getLogger(__name__)
        settings = settings or TrackingSettings()
        window = max(5, int(settings.block_size))
        if window % 2 == 0:
            window += 1
        self.lk_params = dict(
            winSize=(window, window),
            maxLevel=max(0, int(settings.pyramid_levels)),
            criteria=(
                cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT,
                max(1, int(settings.max_iterations)),
                float(max(1e-7, settings.term_epsilon)),
            ),
            minEigThreshold=float(max(1e-8, settings.min_eig_threshold)),
        )
        self.max_bidirectional_error = float(settings.max_bidirectional_error)
        self._prev_frame: Optional[np.ndarray] = None
        self._points: Optional[np.ndarray] = None
        self._lost: Optional[np.ndarray] = None

    @property
    def is_initialized(self) -> bool:
        return self._prev_frame is not None

    def initialize(self, points: Sequence[Point2D], image: np.ndarray) -> None:
        self._prev_frame = _to_gray8(image)
        self._points = np.asarray(points, dtype=np.float32).reshape(-1, 1, 2)
        self._lost = np.zeros(len(self._points), dtype=bool)
        self._log.debug("initialize: %d points", len(self._points))

    def step(self, image: np.ndarray) -> StepResult:
        if self._prev_frame is None or self._points is None or self._lost is None:
            raise RuntimeError("Point tracker is not initialized.")
        current = _to_gray8(image)
        count = len(self._points)
        if count == 0:
            self._prev_frame = current
            return np.zeros((0, 2), dtype=np.float64), np.zeros(0, dtype=bool), np.zeros(0, dtype=np.float64)

        next_pts, status, _ = cv2.calcOpticalFlowPyrLK(self._prev_frame, current, self._points, None, **self.lk_params)
        back_pts, back_status, _ = cv2.calcOpticalFlowPyrLK(current, self._prev_frame, next_pts, None, **self.lk_params)

        fb_error = np.linalg.norm((self._points - back_pts).reshape(-1, 2), axis=1)
        height, width = current.shape[:2]
        xy = next_pts.reshape(-1, 2)
        inside = (xy[:, 0] >= 0) & (xy[:, 0] <= width - 1) & (xy[:, 1] >= 0) & (xy[:, 1] <= height - 1)
        valid = (
            (status.reshape(-1) == 1)
            & (back_status.reshape(-1) == 1)
            & np.isfinite(fb_error)
            & (fb_error <= self.max_bidirectional_error)
            & inside
            & ~self._lost
        )

        confidence = np.where(valid, 1.0 / (1.0 + np.nan_to_num(fb_error, nan=np.inf, posinf=np.inf)), 0.0)
        self._points = np.where(valid.reshape(-1, 1, 1), next_pts, self._points).astype(np.float32)
        self._lost |= ~valid
        self._prev_frame = current

        if not valid.all():
            self._log.debug("step: %d of %d points lost", int((~valid).sum()), count)
        return self._points.reshape(-1, 2).astype(np.float64), valid, confidence.astype(np.float64)

    def release(self) -> None:
        self._prev_frame = None
        self._points = None
        self._lost = None
