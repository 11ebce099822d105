from .app_controller import DotTrackerController, EngineWorker, FrameMailbox

__all__ = ["DotTrackerController", "EngineWorker", "FrameMailbox"]
