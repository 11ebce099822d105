"""
Shared fixtures: a fake frame source, a scripted point tracker and a
scripted manual-correction collaborator.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from dot_tracker.model.entities import PointRecord, SeriesRow
from dot_tracker.model.review import Command, CommandQueue, FrameView, ReviewEngine
from dot_tracker.model.series import Series
from dot_tracker.model.tracking import TrackingSession


def frame_of(image: np.ndarray) -> int:
    return int(image[0, 0])


class FakeSource:
    """Frame source whose images carry their own frame number."""

    def __init__(self, frame_count: int = 10, frame_rate: float = 10.0, fail_at: Optional[int] = None) -> None:
        self._frame_count = frame_count
        self._frame_rate = frame_rate
        self.fail_at = fail_at
        self.reads: List[int] = []

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def frame_rate(self) -> float:
        return self._frame_rate

    def get_frame(self, frame_number: int) -> np.ndarray:
        if not 1 <= frame_number <= self._frame_count:
            raise IndexError(frame_number)
        if frame_number == self.fail_at:
            raise IOError(f"Failed to decode frame {frame_number}")
        self.reads.append(frame_number)
        return np.full((8, 8), frame_number, dtype=np.int32)


class TrackerScript:
    """Drives ScriptedTracker instances and records what the engine asked of them.

    Tracked points move +1 px in x per frame. ``failures`` maps a frame to the
    active-point indices reported invalid on that frame. ``commands_at`` posts
    one or more commands once the given frame has been stepped.
    """

    def __init__(
        self,
        failures: Optional[Dict[int, Sequence[int]]] = None,
        commands_at: Optional[Dict[int, object]] = None,
        queue: Optional[CommandQueue] = None,
    ) -> None:
        self.failures = dict(failures or {})
        self.commands_at = dict(commands_at or {})
        self.queue = queue
        self.inits: List[Tuple[int, List[Tuple[float, float]]]] = []
        self.steps: List[int] = []
        self.releases = 0

    def factory(self) -> "ScriptedTracker":
        return ScriptedTracker(self)


class ScriptedTracker:
    def __init__(self, script: TrackerScript) -> None:
        self.script = script
        self.points: List[Tuple[float, float]] = []
        self.last_frame = 0

    def initialize(self, points, image) -> None:
        self.points = [(float(x), float(y)) for x, y in points]
        self.last_frame = frame_of(image)
        self.script.inits.append((self.last_frame, list(self.points)))

    def step(self, image):
        frame = frame_of(image)
        shift = frame - self.last_frame
        failing = set(self.script.failures.get(frame, ()))
        valid = [k not in failing for k in range(len(self.points))]
        self.points = [
            (x + shift, y) if ok else (x, y) for (x, y), ok in zip(self.points, valid)
        ]
        self.last_frame = frame
        self.script.steps.append(frame)
        commands = self.script.commands_at.pop(frame, [])
        if isinstance(commands, Command):
            commands = [commands]
        for command in commands:
            self.script.queue.post(command)
        confidence = [0.9 if ok else 0.0 for ok in valid]
        return np.array(self.points, dtype=np.float64).reshape(-1, 2), np.array(valid), np.array(confidence)

    def release(self) -> None:
        self.script.releases += 1


class ScriptedCorrector:
    """Answers correction requests from a list of ``{point: pos}`` replies.

    A ``None`` reply cancels the correction; an exhausted list keeps the
    points as given.
    """

    def __init__(self, replies: Sequence[Optional[Dict[int, Tuple[float, float]]]] = ()) -> None:
        self.replies = list(replies)
        self.calls: List[Tuple[int, List[int], List[Optional[Tuple[float, float]]]]] = []

    def correct(self, image, row: SeriesRow, failed):
        self.calls.append((row.frame, list(failed), row.positions()))
        reply = self.replies.pop(0) if self.replies else {}
        if reply is None:
            return None
        positions = row.positions()
        for point, pos in reply.items():
            positions[point] = pos
        return positions


class DisplayRecorder:
    def __init__(self) -> None:
        self.views: List[FrameView] = []

    def __call__(self, view: FrameView) -> None:
        self.views.append(view)

    @property
    def frames(self) -> List[int]:
        return [view.frame for view in self.views]


TEMPLATE_POSITIONS = [(10.0, 10.0), (20.0, 20.0), (30.0, 30.0)]


@pytest.fixture
def template() -> List[PointRecord]:
    return [PointRecord(label=f"P{k + 1}", pos=pos) for k, pos in enumerate(TEMPLATE_POSITIONS)]


@pytest.fixture
def source() -> FakeSource:
    return FakeSource(frame_count=20, frame_rate=10.0)


@pytest.fixture
def make_engine(template, source):
    """Build a review engine over frames 1..10 of the fake source."""

    def build(
        failures=None,
        commands_at=None,
        replies=(),
        series: Optional[Series] = None,
        frames: Optional[Sequence[int]] = None,
    ):
        frames = list(frames or range(1, 11))
        if series is None:
            series = Series.from_template(template, frames, source.frame_rate)
        queue = CommandQueue()
        script = TrackerScript(failures=failures, commands_at=commands_at, queue=queue)
        corrector = ScriptedCorrector(replies)
        display = DisplayRecorder()
        engine = ReviewEngine(
            series,
            frames,
            source,
            TrackingSession(script.factory),
            corrector,
            display=display,
            commands=queue,
        )
        return engine, script, corrector, display

    return build
