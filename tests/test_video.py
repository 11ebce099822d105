"""
Tests for the OpenCV frame source.
"""

import cv2
import numpy as np
import pytest

from dot_tracker.model.errors import CannotOpenSource
from dot_tracker.model.video import VideoPlayer


@pytest.fixture
def movie(tmp_path):
    path = tmp_path / "clip.avi"
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
    if not writer.isOpened():
        pytest.skip("MJPG writer not available")
    for level in (20, 60, 100, 140, 180):
        writer.write(np.full((48, 64, 3), level, dtype=np.uint8))
    writer.release()
    return path


class TestVideoPlayer:
    """Tests for VideoPlayer."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(CannotOpenSource) as excinfo:
            VideoPlayer.open(str(tmp_path / "nope.mp4"))
        assert excinfo.value.path.endswith("nope.mp4")

    def test_open_and_read(self, movie):
        """Frames are 1-based and readable out of order."""
        with VideoPlayer.open(str(movie)) as player:
            assert player.is_loaded()
            assert player.frame_rate == pytest.approx(10.0)
            assert 1 <= player.frame_count <= 5
            assert player.metadata.frame_size == (64, 48)

            first = player.get_frame(1)
            assert first.shape == (48, 64, 3)
            assert abs(float(first.mean()) - 20.0) < 8.0

            last = player.get_frame(player.frame_count)
            assert float(last.mean()) > float(first.mean())
            again = player.get_frame(1)
            assert abs(float(again.mean()) - 20.0) < 8.0

            with pytest.raises(IndexError):
                player.get_frame(0)
        assert not player.is_loaded()

    def test_read_without_movie(self):
        with pytest.raises(RuntimeError):
            VideoPlayer().get_frame(1)
