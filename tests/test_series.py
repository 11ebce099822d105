"""
Tests for the point series store and its persistence.
"""

import json

import numpy as np
import pytest

from dot_tracker.model.entities import PointRecord, PointStatus, SeriesRow, status_colour
from dot_tracker.model.series import Series, load_points, load_series, save_series, template_from_dict


def make_series(template, frames=(1, 2, 3, 4), rate=10.0):
    return Series.from_template(template, list(frames), rate)


class TestPointStatus:
    """Tests for the point status variant."""

    def test_resolve_failure(self):
        """Clearing a failure keeps only the user-invalid bit."""
        assert PointStatus.FAILED_TRACK.resolve_failure() is PointStatus.VALID
        assert PointStatus.VALID.resolve_failure() is PointStatus.VALID
        assert PointStatus.USER_INVALID.resolve_failure() is PointStatus.USER_INVALID

    def test_colours_follow_status(self):
        assert status_colour(None) == (0, 255, 255)
        assert status_colour(PointStatus.VALID) == (0, 255, 0)
        assert status_colour(PointStatus.FAILED_TRACK) == (255, 0, 0)
        assert status_colour(PointStatus.USER_INVALID) == (0, 0, 0)

    def test_row_flags(self):
        row = SeriesRow(frame=1, time=0.0, points=[PointRecord("A", pos=(1.0, 2.0)), PointRecord("B")])
        assert not row.has_positions
        assert not row.is_processed
        row.points[1].pos = (3.0, 4.0)
        assert row.has_positions
        with pytest.raises(ValueError):
            row.set_positions([(0.0, 0.0)])


class TestSeries:
    """Tests for Series construction and the store contract."""

    def test_from_template_frames_and_times(self, template):
        """Requested frames become rows with frame-derived times."""
        series = make_series(template, frames=(3, 7, 11), rate=25.0)

        assert series.frames() == [3, 7, 11]
        assert [row.time for row in series] == [2 / 25.0, 6 / 25.0, 10 / 25.0]
        assert series.get(0).positions() == [(10.0, 10.0), (20.0, 20.0), (30.0, 30.0)]
        assert series.get(1).positions() == [None, None, None]
        assert series.labels == ["P1", "P2", "P3"]

    def test_empty_template_rejected(self):
        with pytest.raises(ValueError):
            Series.from_template([], [1, 2], 10.0)

    def test_frames_must_ascend(self, template):
        rows = [SeriesRow(frame=f, time=0.0, points=[p.copy() for p in template]) for f in (2, 1)]
        with pytest.raises(ValueError):
            Series([p.label for p in template], rows)

    def test_set_rejects_relabel(self, template):
        series = make_series(template)
        points = [PointRecord(label=f"X{k}") for k in range(3)]
        with pytest.raises(ValueError):
            series.set(0, points)

    def test_set_copies_points(self, template):
        series = make_series(template)
        points = [PointRecord(label=p.label, pos=(1.0, 1.0), status=PointStatus.VALID) for p in template]
        series.set(1, points)
        points[0].pos = (9.0, 9.0)
        assert series.get(1).positions()[0] == (1.0, 1.0)

    def test_row_for_frame(self, template):
        series = make_series(template, frames=(3, 7, 11))
        assert series.row_for_frame(7) == 1
        with pytest.raises(KeyError):
            series.row_for_frame(4)

    def test_first_unprocessed_and_resume_index(self, template):
        """Resume one row before the first row with a missing status."""
        series = make_series(template)
        assert series.find_first_unprocessed_row() == 0
        assert series.resume_index() == 0

        for index in range(2):
            for record in series.get(index).points:
                record.pos = (0.0, 0.0)
                record.status = PointStatus.VALID
        series.get(2).points[0].status = PointStatus.VALID

        assert series.find_first_unprocessed_row() == 2
        assert series.resume_index() == 1

    def test_resume_index_all_processed(self, template):
        series = make_series(template)
        for row in series:
            for record in row.points:
                record.pos = (0.0, 0.0)
                record.status = PointStatus.USER_INVALID
        assert series.find_first_unprocessed_row() is None
        assert series.resume_index() == 3

    def test_resume_index_over_subset(self, template):
        """Row positions are reported within the requested row order."""
        series = make_series(template)
        for record in series.get(2).points:
            record.status = PointStatus.VALID
        assert series.find_first_unprocessed_row([2, 3]) == 1
        assert series.resume_index([2, 3]) == 0


class TestPersistence:
    """Tests for saving and loading series and templates."""

    def test_save_and_load(self, template, tmp_path):
        series = make_series(template)
        row = series.get(1)
        row.set_positions([(1.5, 2.5), (3.0, 4.0), (5.0, 6.0)])
        for record, status in zip(row.points, [PointStatus.VALID, PointStatus.FAILED_TRACK, PointStatus.USER_INVALID]):
            record.status = status
            record.confidence = 0.5

        path = tmp_path / "series.json"
        save_series(series, path)
        loaded = load_series(path)

        assert loaded.labels == series.labels
        assert list(loaded) == list(series)

    def test_saved_layout(self, template, tmp_path):
        """Frame and time are stored once per row."""
        path = tmp_path / "series.json"
        make_series(template).save(path)
        data = json.loads(path.read_text())

        assert data["labels"] == ["P1", "P2", "P3"]
        first = data["rows"][0]
        assert first["frame"] == 1
        assert first["time"] == 0.0
        assert first["points"][0] == {"pos": [10.0, 10.0], "status": None, "confidence": None}

    def test_load_points_template(self, tmp_path):
        path = tmp_path / "template.json"
        path.write_text(json.dumps({"points": [{"label": "A", "pos": [1, 2]}, {"label": "B", "pos": [3, 4]}]}))

        template = load_points(path)

        assert [p.label for p in template] == ["A", "B"]
        assert template[1].pos == (3.0, 4.0)

    def test_load_points_series(self, template, tmp_path):
        path = tmp_path / "series.json"
        make_series(template).save(path)
        assert isinstance(load_points(path), Series)

    def test_template_requires_positions(self):
        with pytest.raises(ValueError):
            template_from_dict([{"label": "A", "pos": [1, 2]}, {"label": "B"}])
        with pytest.raises(ValueError):
            template_from_dict({"points": []})


class TestArrays:
    """Tests for the array export."""

    def test_to_arrays(self, template):
        series = make_series(template)
        series.get(0).points[0].confidence = 0.8

        xy, conf, frames = series.to_arrays()

        assert xy.shape == (1, 2, 3)
        assert conf.shape == (1, 3)
        assert frames.tolist() == [1]
        assert xy[0, :, 1].tolist() == [20.0, 20.0]
        assert conf[0, 0] == 0.8
        assert np.isnan(conf[0, 1])

    def test_to_arrays_keeps_untracked(self, template):
        xy, _, frames = make_series(template).to_arrays(drop_untracked=False)
        assert xy.shape == (4, 2, 3)
        assert np.isnan(xy[3]).all()
        assert frames.tolist() == [1, 2, 3, 4]
