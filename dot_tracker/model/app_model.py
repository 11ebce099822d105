from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from .entities import PointRecord
from .errors import InvalidFrameRequest
from .frames import TimeInterval, resolve_frames
from .review import CommandQueue, Corrector, ReviewEngine
from .review.engine import Display
from .series import Series
from .settings import AppSettings, SettingsManager, get_settings_path
from .tracking import LucasKanadePointTracker, TrackingSession
from .transforms import ImageTransform
from .video import VideoPlayer


@dataclass
class SessionRequest:
    movie_path: str
    points: Union[List[PointRecord], Series]
    frames: Optional[Sequence[int]] = None
    times: Optional[Sequence[TimeInterval]] = None
    params: Optional[Dict[str, Any]] = None
    transform: Optional[ImageTransform] = None


class DotTrackerModel:
    """Encapsulates the non-UI state for the dot tracker application."""

    def __init__(self, settings_path: Optional[Path] = None) -> None:
        self._log = logging.getLogger(__name__)
        self.settings_manager = SettingsManager(settings_path or get_settings_path())
        self.settings: AppSettings = self.settings_manager.settings
        self.video_player: Optional[VideoPlayer] = None
        self.commands = CommandQueue()
        self.engine: Optional[ReviewEngine] = None

    def prepare_session(
        self,
        request: SessionRequest,
        corrector: Corrector,
        display: Optional[Display] = None,
    ) -> ReviewEngine:
        """Validate the request and build the review engine.

        Every error is raised here, before any frame is displayed.
        """
        tracking = self.settings.tracking.with_overrides(request.params)
        player = VideoPlayer.open(request.movie_path)
        resumed = request.points if isinstance(request.points, Series) else None
        try:
            frames = resolve_frames(
                player.frame_count,
                player.frame_rate,
                frames=request.frames,
                times=request.times,
                series=resumed,
            )
        except InvalidFrameRequest:
            player.release()
            raise

        if resumed is not None:
            series = resumed
        else:
            series = Series.from_template(request.points, frames, player.frame_rate)
        self._log.info(
            "Prepared session for %s: %d frames (%d..%d), %d points",
            request.movie_path,
            len(frames),
            frames[0],
            frames[-1],
            series.point_count,
        )

        self.video_player = player
        self.engine = ReviewEngine(
            series,
            frames,
            player,
            TrackingSession(lambda: LucasKanadePointTracker(tracking)),
            corrector,
            display=display,
            commands=self.commands,
            transform=request.transform,
            frame_delay_ms=self.settings.playback.frame_delay_ms,
            name=Path(request.movie_path).name,
        )
        return self.engine

    def release(self) -> None:
        if self.video_player is not None:
            self.video_player.release()
            self.video_player = None
