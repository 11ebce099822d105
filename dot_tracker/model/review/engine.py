from __future__ import annotations

# Interactive tracking/review state machine. A single control loop consumes
# operator commands, steps the tracking session through the active frames,
# pauses for manual correction when the tracker loses a point, and writes
# every result into the series.

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple
import logging

import numpy as np

from ..entities import Point2D, PointRecord, PointStatus, SeriesRow
from ..errors import SessionClosed
from ..series import Series
from ..tracking.session import TrackingSession
from ..transforms import ImageTransform
from ..validity import ValidityController
from .commands import Command, CommandQueue, CommandType


class EngineState(Enum):
    PAUSED = "paused"
    TRACKING_ACTIVE = "tracking"
    STEP_BACK = "step_back"
    STEP_FWD = "step_fwd"
    PLAY_BACK = "play_back"
    PLAY_FWD = "play_fwd"
    JUMP = "jump"
    MODIFY = "modify"
    CLOSED = "closed"


class SessionOutcome(Enum):
    COMPLETED = "completed"
    CLOSED_EARLY = "closed_early"
    FAILED = "failed"


@dataclass
class SessionResult:
    series: Series
    outcome: SessionOutcome
    last_frame: int
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.outcome is SessionOutcome.COMPLETED


@dataclass
class FrameView:
    frame: int
    cursor: int
    last_frame: int
    time: float
    image: np.ndarray
    labels: List[str]
    positions: List[Optional[Point2D]]
    statuses: List[Optional[PointStatus]]
    invalid: List[bool]
    state: EngineState
    title: str


class FrameSource(Protocol):
    @property
    def frame_count(self) -> int:
        ...

    @property
    def frame_rate(self) -> float:
        ...

    def get_frame(self, frame_number: int) -> np.ndarray:
        ...


class Corrector(Protocol):
    def correct(
        self, image: np.ndarray, row: SeriesRow, failed: Sequence[int]
    ) -> Optional[Sequence[Point2D]]:
        ...


Display = Callable[[FrameView], None]


class ReviewEngine:
    def __init__(
        self,
        series: Series,
        frames: Sequence[int],
        source: FrameSource,
        session: TrackingSession,
        corrector: Corrector,
        *,
        display: Optional[Display] = None,
        commands: Optional[CommandQueue] = None,
        transform: Optional[ImageTransform] = None,
        frame_delay_ms: int = 0,
        name: str = "",
    ) -> None:
        self._log = logging.getLogger(__name__)
        if not frames:
            raise ValueError("Active frame list is empty.")
        self.series = series
        self.frames: List[int] = [int(frame) for frame in frames]
        self._rows: List[int] = [series.row_for_frame(frame) for frame in self.frames]
        self.source = source
        self.session = session
        self.corrector = corrector
        self.display = display
        self.commands = commands or CommandQueue()
        self.transform = transform
        self.frame_delay = max(0, int(frame_delay_ms)) / 1000.0
        self.name = name

        self.cursor: int = series.resume_index(self._rows)
        self.last_good: Optional[int] = self._find_last_good(self.cursor)
        self.validity = ValidityController(series.point_count)
        self.validity.sync_from_row(self.row())
        self.state = EngineState.PAUSED
        self._pending: Optional[Command] = None
        self._image: Optional[Tuple[int, np.ndarray]] = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def row(self, cursor: Optional[int] = None) -> SeriesRow:
        return self.series.get(self._rows[self.cursor if cursor is None else cursor])

    @property
    def current_frame(self) -> int:
        return self.frames[self.cursor]

    def is_complete(self) -> bool:
        return self.series.find_first_unprocessed_row(self._rows) is None

    # ------------------------------------------------------------------
    # Control loop
    # ------------------------------------------------------------------
    def run(self) -> SessionResult:
        self._log.info(
            "Review session started: %d frames, %d points, resuming at frame %d",
            len(self.frames),
            self.series.point_count,
            self.current_frame,
        )
        error: Optional[str] = None
        try:
            self._show()
            while True:
                command = self._next_command()
                if command.type is CommandType.CLOSE:
                    break
                self.handle(command)
        except SessionClosed:
            self._log.info("Session closed during manual correction at frame %d", self.current_frame)
        except Exception as exc:
            # Rows written so far stay in the series and are still returned.
            self._log.exception("Review session aborted at frame %d", self.current_frame)
            error = str(exc) or type(exc).__name__
        finally:
            self.session.close()
            self.state = EngineState.CLOSED

        if error is not None:
            outcome = SessionOutcome.FAILED
        elif self.is_complete():
            outcome = SessionOutcome.COMPLETED
        else:
            outcome = SessionOutcome.CLOSED_EARLY
        self._log.info("Review session finished (%s) at frame %d", outcome.value, self.current_frame)
        return SessionResult(series=self.series, outcome=outcome, last_frame=self.current_frame, error=error)

    def handle(self, command: Command) -> None:
        kind = command.type
        self._log.debug("command %s at frame %d", kind.value, self.current_frame)
        if kind is CommandType.STEP_BACK:
            self._step(EngineState.STEP_BACK, -1)
        elif kind is CommandType.STEP_FWD:
            self._step(EngineState.STEP_FWD, 1)
        elif kind is CommandType.PLAY_BACK:
            self._play(EngineState.PLAY_BACK, -1)
        elif kind is CommandType.PLAY_FWD:
            self._play(EngineState.PLAY_FWD, 1)
        elif kind is CommandType.JUMP:
            self._jump(command.frame)
        elif kind is CommandType.MODIFY:
            self._modify()
        elif kind is CommandType.TOGGLE_INVALID:
            self._toggle(command.point)
        elif kind is CommandType.RESUME:
            if self._resume():
                self._track()
        elif kind is CommandType.CLOSE:
            raise SessionClosed()
        # STOP and PAUSE are no-ops while paused.

    def _next_command(self) -> Command:
        if self._pending is not None:
            command, self._pending = self._pending, None
            return command
        return self.commands.wait()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------
    def _move(self, delta: int) -> bool:
        target = self.cursor + delta
        within = 0 <= target < len(self.frames)
        self.cursor = min(max(target, 0), len(self.frames) - 1)
        self._land()
        return within

    def _step(self, state: EngineState, delta: int) -> None:
        self.state = state
        self._move(delta)
        self.state = EngineState.PAUSED
        self._show()

    def _play(self, state: EngineState, delta: int) -> None:
        self.state = state
        while True:
            within = self._move(delta)
            self._show()
            if not within:
                break
            command = self.commands.poll(self.frame_delay)
            if command is None:
                continue
            if command.type not in (CommandType.STOP, CommandType.PAUSE):
                self._pending = command
            break
        self.state = EngineState.PAUSED
        self._show()

    def _jump(self, frame: Optional[int]) -> None:
        if frame is None:
            return
        self.state = EngineState.JUMP
        self.cursor = min(range(len(self.frames)), key=lambda i: abs(self.frames[i] - frame))
        self._land()
        self.state = EngineState.PAUSED
        self._show()

    def _land(self) -> None:
        row = self.row()
        if row.has_positions:
            self.last_good = self.cursor
        self.validity.sync_from_row(row)

    def _find_last_good(self, cursor: int) -> Optional[int]:
        for index in list(range(cursor, -1, -1)) + list(range(cursor + 1, len(self.frames))):
            if self.row(index).has_positions:
                return index
        return None

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def _toggle(self, point: Optional[int]) -> None:
        if point is None or not 0 <= point < self.series.point_count:
            self._log.warning("Ignoring toggle for unknown point %s", point)
            return
        invalid = self.validity.toggle(point)
        self._log.info("Point %s marked %s", self.series.labels[point], "invalid" if invalid else "valid")
        self._show()

    def _modify(self) -> None:
        row = self.row().copy()
        if not row.has_positions:
            if self.last_good is None:
                self._log.warning("No point positions available to modify at frame %d", self.current_frame)
                return
            row.set_positions(self.row(self.last_good).positions())
        self.state = EngineState.MODIFY
        row.set_positions(self._correct(row, []))
        self._commit(row)
        self.last_good = self.cursor
        self.state = EngineState.PAUSED
        self._show()

    def _correct(self, row: SeriesRow, failed: Sequence[int]) -> List[Point2D]:
        positions = self.corrector.correct(self._frame_image(self.cursor), row.copy(), list(failed))
        if positions is None:
            raise SessionClosed()
        positions = list(positions)
        if len(positions) != self.series.point_count:
            raise ValueError(f"Correction returned {len(positions)} points, expected {self.series.point_count}")
        return positions

    def _commit(self, row: SeriesRow) -> None:
        self.series.set(self._rows[self.cursor], row.points)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------
    def _resume(self) -> bool:
        row = self.row()
        seed = self.cursor if row.has_positions else self.last_good
        if seed is None:
            self._log.warning("Cannot resume tracking at frame %d: no point positions", self.current_frame)
            return False
        active = self.validity.active_subset(self.row(seed).positions())
        self.session.restart(active, self._frame_image(self.cursor), frame=self.current_frame)
        self.last_good = seed
        self._log.info(
            "Tracking resumed at frame %d with %d of %d points",
            self.current_frame,
            len(active),
            self.series.point_count,
        )
        if self.validity.any_invalid:
            self._log.debug(
                "Excluded from tracking: %s",
                ", ".join(label for label, invalid in zip(self.series.labels, self.validity.as_list()) if invalid),
            )
        if row.is_processed:
            if self.cursor >= len(self.frames) - 1:
                self._show()
                return False
            self.cursor += 1
        self.state = EngineState.TRACKING_ACTIVE
        return True

    def _track(self) -> None:
        while True:
            frame = self.current_frame
            image = self._frame_image(self.cursor)
            points, valid, confidence = self.session.step(image, frame=frame)
            last_full = self.row(self.last_good).positions()
            points, valid, confidence = self.validity.merge_back(points, valid, confidence, last_full)
            statuses = self.validity.statuses(valid)

            row = SeriesRow(
                frame=frame,
                time=self.row().time,
                points=[
                    PointRecord(label=label, pos=pos, status=status, confidence=conf)
                    for label, pos, status, conf in zip(self.series.labels, points, statuses, confidence)
                ],
            )
            self._commit(row)
            self._show()

            failed = [k for k, status in enumerate(statuses) if status is PointStatus.FAILED_TRACK]
            if failed:
                self._log.warning(
                    "Tracking failed at frame %d for %s",
                    frame,
                    ", ".join(self.series.labels[k] for k in failed),
                )
                self.state = EngineState.PAUSED
                row.set_positions(self._correct(row, failed))
                for record in row.points:
                    record.status = record.status.resolve_failure()
                self._commit(row)
                self.last_good = self.cursor
                self._show()
                return

            self.last_good = self.cursor
            if self.cursor >= len(self.frames) - 1:
                self._log.info("Tracking reached the last frame (%d)", frame)
                self.state = EngineState.PAUSED
                self._show()
                return

            command = self.commands.poll()
            if command is not None and command.type is not CommandType.RESUME:
                if command.type is not CommandType.PAUSE:
                    self._pending = command
                self._log.info("Tracking paused at frame %d", frame)
                self.state = EngineState.PAUSED
                self._show()
                return
            self.cursor += 1

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------
    def _frame_image(self, cursor: int) -> np.ndarray:
        if self._image is not None and self._image[0] == cursor:
            return self._image[1]
        image = self.source.get_frame(self.frames[cursor])
        if self.transform is not None:
            image = self.transform(image)
        self._image = (cursor, image)
        return image

    def view(self) -> FrameView:
        row = self.row()
        if row.has_positions or self.last_good is None:
            positions = row.positions()
            statuses = row.statuses()
        else:
            positions = self.row(self.last_good).positions()
            statuses = [None] * self.series.point_count
        title = "%s  FRAME %04d / %04d  (%.3f secs)" % (self.name, row.frame, self.frames[-1], row.time)
        return FrameView(
            frame=row.frame,
            cursor=self.cursor,
            last_frame=self.frames[-1],
            time=row.time,
            image=self._frame_image(self.cursor),
            labels=self.series.labels,
            positions=positions,
            statuses=statuses,
            invalid=self.validity.as_list(),
            state=self.state,
            title=title.strip(),
        )

    def _show(self) -> None:
        if self.display is not None:
            self.display(self.view())
