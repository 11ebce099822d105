"""Model layer containing the application's core logic and data structures."""

from .app_model import DotTrackerModel, SessionRequest
from .entities import (
    ColorRGB,
    Point2D,
    PointRecord,
    PointStatus,
    SeriesRow,
    status_colour,
)
from .errors import CannotOpenSource, InvalidFrameRequest, SessionClosed
from .frames import parse_frame_tokens, parse_time_tokens, resolve_frames, times_to_frames
from .review import (
    Command,
    CommandQueue,
    CommandType,
    EngineState,
    FrameView,
    ReviewEngine,
    SessionOutcome,
    SessionResult,
)
from .series import Series, load_points, load_series, save_series
from .settings import (
    AppSettings,
    DisplaySettings,
    PlaybackSettings,
    SettingsManager,
    TrackingSettings,
    get_settings_path,
)
from .tracking import LucasKanadePointTracker, TrackingSession
from .validity import ValidityController
from .video import VideoPlayer

__all__ = [
    "AppSettings",
    "CannotOpenSource",
    "ColorRGB",
    "Command",
    "CommandQueue",
    "CommandType",
    "DisplaySettings",
    "DotTrackerModel",
    "EngineState",
    "FrameView",
    "InvalidFrameRequest",
    "LucasKanadePointTracker",
    "PlaybackSettings",
    "Point2D",
    "PointRecord",
    "PointStatus",
    "ReviewEngine",
    "Series",
    "SeriesRow",
    "SessionClosed",
    "SessionOutcome",
    "SessionRequest",
    "SessionResult",
    "SettingsManager",
    "TrackingSession",
    "TrackingSettings",
    "ValidityController",
    "VideoPlayer",
    "get_settings_path",
    "load_points",
    "load_series",
    "resolve_frames",
    "parse_frame_tokens",
    "parse_time_tokens",
    "save_series",
    "status_colour",
    "times_to_frames",
]
