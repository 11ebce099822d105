"""Movie frame access."""

from .player import VideoMetadata, VideoPlayer

__all__ = ["VideoMetadata", "VideoPlayer"]
