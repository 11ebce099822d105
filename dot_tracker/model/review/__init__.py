"""Interactive tracking and review."""

from .commands import Command, CommandQueue, CommandType
from .engine import (
    Corrector,
    EngineState,
    FrameSource,
    FrameView,
    ReviewEngine,
    SessionOutcome,
    SessionResult,
)

__all__ = [
    "Command",
    "CommandQueue",
    "CommandType",
    "Corrector",
    "EngineState",
    "FrameSource",
    "FrameView",
    "ReviewEngine",
    "SessionOutcome",
    "SessionResult",
]
