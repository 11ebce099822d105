from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence
import logging
import queue
import threading

import numpy as np
from PyQt5 import QtCore

from ..model.app_model import DotTrackerModel, SessionRequest
from ..model.entities import Point2D, SeriesRow
from ..model.review import Command, CommandType, FrameView, ReviewEngine, SessionOutcome, SessionResult
from ..model.settings import AppSettings


class EngineWorker(QtCore.QThread):
    """Runs the review engine's control loop off the GUI thread."""

    result_signal = QtCore.pyqtSignal(object)
    failed_signal = QtCore.pyqtSignal(str)

    def __init__(self, engine: ReviewEngine, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._engine = engine
        self._log = logging.getLogger(__name__)
        self.result: Optional[SessionResult] = None

    def run(self) -> None:  # pragma: no cover - runs in background thread
        try:
            result = self._engine.run()
        except Exception as exc:
            self._log.exception("EngineWorker: review session failed")
            self.failed_signal.emit(str(exc))
            return
        self.result = result
        if result.outcome is SessionOutcome.FAILED:
            self.failed_signal.emit(result.error or "unknown error")
            return
        self.result_signal.emit(result)


class FrameMailbox:
    """Holds only the newest frame view until the GUI thread collects it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._view: Optional[FrameView] = None

    def offer(self, view: FrameView) -> bool:
        """Store ``view``, replacing any uncollected one; True if a delivery must be scheduled."""
        with self._lock:
            idle = self._view is None
            self._view = view
        return idle

    def take(self) -> Optional[FrameView]:
        with self._lock:
            view, self._view = self._view, None
        return view


class DotTrackerController(QtCore.QObject):
    """Coordinates the review engine thread and the window."""

    frame_ready = QtCore.pyqtSignal(object)
    correction_requested = QtCore.pyqtSignal(object, object, object)
    session_finished = QtCore.pyqtSignal(object)
    session_failed = QtCore.pyqtSignal(str)
    _frame_posted = QtCore.pyqtSignal()

    def __init__(self, settings_path: Optional[Path] = None, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._log = logging.getLogger(__name__)
        self._model = DotTrackerModel(settings_path)
        self._worker: Optional[EngineWorker] = None
        self._replies: "queue.Queue[Optional[List[Point2D]]]" = queue.Queue()
        self._closing = False
        self._mailbox = FrameMailbox()
        self._frame_posted.connect(self._deliver_frame)

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------
    @property
    def settings(self) -> AppSettings:
        return self._model.settings

    @property
    def engine(self) -> Optional[ReviewEngine]:
        return self._model.engine

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def prepare(self, request: SessionRequest) -> ReviewEngine:
        """Validate the request and build the engine; raises before any window exists."""
        return self._model.prepare_session(request, corrector=self, display=self.publish_frame)

    def publish_frame(self, view: FrameView) -> None:
        """Called from the engine thread; views the GUI has not drawn yet are dropped."""
        if self._mailbox.offer(view):
            self._frame_posted.emit()

    def _deliver_frame(self) -> None:
        view = self._mailbox.take()
        if view is not None:
            self.frame_ready.emit(view)

    def start(self) -> None:
        engine = self._model.engine
        if engine is None:
            raise RuntimeError("No review session prepared.")
        if self._worker is not None:
            return
        self._worker = EngineWorker(engine, self)
        self._worker.result_signal.connect(self.session_finished)
        self._worker.failed_signal.connect(self.session_failed)
        self._worker.start()

    def close(self, timeout_ms: int = 5000) -> None:
        if self._closing:
            return
        self._closing = True
        self.post(Command(CommandType.CLOSE))
        self._replies.put(None)
        if self._worker is not None and not self._worker.wait(timeout_ms):
            self._log.warning("Review engine did not stop within %d ms", timeout_ms)
            return
        self._model.release()

    @property
    def result(self) -> Optional[SessionResult]:
        return self._worker.result if self._worker is not None else None

    # ------------------------------------------------------------------
    # Operator commands
    # ------------------------------------------------------------------
    def post(self, command: Command) -> None:
        self._log.debug("posting %s", command.type.value)
        self._model.commands.post(command)

    def send(self, kind: CommandType) -> None:
        self.post(Command(kind))

    def jump(self, frame: int) -> None:
        self.post(Command.jump(frame))

    def toggle_invalid(self, point: int) -> None:
        self.post(Command.toggle(point))

    # ------------------------------------------------------------------
    # Manual correction
    # ------------------------------------------------------------------
    def correct(
        self, image: np.ndarray, row: SeriesRow, failed: Sequence[int]
    ) -> Optional[Sequence[Point2D]]:
        """Block the engine thread until the window submits corrected positions.

        Returns None when the session is being closed.
        """
        if self._closing:
            return None
        self.correction_requested.emit(image, row, list(failed))
        return self._replies.get()

    def submit_correction(self, positions: Sequence[Point2D]) -> None:
        self._replies.put([(float(x), float(y)) for x, y in positions])

    def cancel_correction(self) -> None:
        self._replies.put(None)

