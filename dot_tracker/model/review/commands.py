from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import queue


class CommandType(Enum):
    STEP_BACK = "step_back"
    STEP_FWD = "step_fwd"
    PLAY_BACK = "play_back"
    PLAY_FWD = "play_fwd"
    STOP = "stop"
    JUMP = "jump"
    MODIFY = "modify"
    TOGGLE_INVALID = "toggle_invalid"
    RESUME = "resume"
    PAUSE = "pause"
    CLOSE = "close"


@dataclass(frozen=True)
class Command:
    type: CommandType
    frame: Optional[int] = None
    point: Optional[int] = None

    @classmethod
    def jump(cls, frame: int) -> "Command":
        return cls(CommandType.JUMP, frame=int(frame))

    @classmethod
    def toggle(cls, point: int) -> "Command":
        return cls(CommandType.TOGGLE_INVALID, point=int(point))


class CommandQueue:
    """Operator commands consumed by the review engine's control loop."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[Command]" = queue.Queue()

    def post(self, command: Command) -> None:
        self._queue.put(command)

    def wait(self) -> Command:
        return self._queue.get()

    def poll(self, timeout: float = 0.0) -> Optional[Command]:
        try:
            if timeout > 0:
                return self._queue.get(timeout=timeout)
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def clear(self) -> None:
        while self.poll() is not None:
            pass
