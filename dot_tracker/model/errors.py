from typing import Iterable, List, Optional


class CannotOpenSource(ValueError):
    """Raised when the movie file cannot be opened for reading."""

    def __init__(self, path: str, reason: Optional[str] = None) -> None:
        self.path = str(path)
        message = f"Unable to open movie file {self.path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidFrameRequest(ValueError):
    """Raised before a session starts when the requested frames cannot be used."""

    def __init__(self, message: str, frames: Iterable[int] = ()) -> None:
        self.frames: List[int] = sorted(int(frame) for frame in frames)
        if self.frames:
            message = f"{message}: {self.frames}"
        super().__init__(message)


class SessionClosed(Exception):
    """Signals that the operator closed the session (not an error)."""
