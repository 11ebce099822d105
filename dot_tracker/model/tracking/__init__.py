"""Point tracking for the dot tracker."""

from .point_tracker import LucasKanadePointTracker, PointTracker
from .session import TrackingSession

__all__ = ["LucasKanadePointTracker", "PointTracker", "TrackingSession"]
