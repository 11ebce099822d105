"""
Tests for session preparation in the application model.
"""

import pytest

from dot_tracker.model import app_model
from dot_tracker.model.app_model import DotTrackerModel, SessionRequest
from dot_tracker.model.errors import InvalidFrameRequest

from conftest import FakeSource, ScriptedCorrector


class FakePlayer(FakeSource):
    opened = []

    def __init__(self) -> None:
        super().__init__(frame_count=20, frame_rate=10.0)
        self.released = False

    @classmethod
    def open(cls, path):
        player = cls()
        cls.opened.append(player)
        return player

    def release(self) -> None:
        self.released = True


@pytest.fixture
def model(tmp_path, monkeypatch):
    FakePlayer.opened = []
    monkeypatch.setattr(app_model, "VideoPlayer", FakePlayer)
    return DotTrackerModel(tmp_path / "settings.json")


class TestPrepareSession:
    """Tests for DotTrackerModel.prepare_session."""

    def test_duplicate_frames_rejected_before_reading(self, model, template):
        """Duplicate frames fail before any frame is decoded."""
        request = SessionRequest(movie_path="clip.mp4", points=template, frames=[2, 5, 5, 9])

        with pytest.raises(InvalidFrameRequest) as excinfo:
            model.prepare_session(request, corrector=ScriptedCorrector())

        assert list(excinfo.value.frames) == [5]
        player = FakePlayer.opened[0]
        assert player.reads == []
        assert player.released
        assert model.engine is None

    def test_builds_engine(self, model, template):
        request = SessionRequest(movie_path="clip.mp4", points=template, frames=[9, 2, 5, 40])

        engine = model.prepare_session(request, corrector=ScriptedCorrector())

        assert engine.frames == [2, 5, 9]
        assert engine.series.frames() == [2, 5, 9]
        assert engine.name == "clip.mp4"
        assert FakePlayer.opened[0].reads == []
        assert model.engine is engine

    def test_unknown_parameter_rejected(self, model, template):
        request = SessionRequest(movie_path="clip.mp4", points=template, params={"Bogus": 1})

        with pytest.raises((KeyError, ValueError)):
            model.prepare_session(request, corrector=ScriptedCorrector())
        assert FakePlayer.opened == []
