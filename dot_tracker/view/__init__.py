from .main_window import DotTrackerWindow
from .video_widget import VideoCanvas

__all__ = ["DotTrackerWindow", "VideoCanvas"]
