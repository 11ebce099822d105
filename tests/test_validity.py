"""
Tests for the point exclusion map.
"""

import pytest

from dot_tracker.model.entities import PointRecord, PointStatus, SeriesRow
from dot_tracker.model.validity import ValidityController


class TestValidityController:
    """Tests for ValidityController."""

    def test_toggle(self):
        validity = ValidityController(3)
        assert validity.toggle(1) is True
        assert validity.as_list() == [False, True, False]
        assert validity.any_invalid
        assert validity.toggle(1) is False
        assert not validity.any_invalid

    def test_active_subset_preserves_order(self):
        validity = ValidityController(4)
        validity.toggle(0)
        validity.toggle(2)
        assert validity.active_subset(["a", "b", "c", "d"]) == ["b", "d"]
        assert validity.active_count() == 2

    def test_merge_back(self):
        """Excluded points are frozen, valid and zero-confidence."""
        validity = ValidityController(3)
        validity.toggle(1)

        points, valid, conf = validity.merge_back(
            [(1.0, 1.0), (3.0, 3.0)],
            [True, False],
            [0.9, 0.1],
            [(0.0, 0.0), (5.0, 5.0), (0.0, 0.0)],
        )

        assert points == [(1.0, 1.0), (5.0, 5.0), (3.0, 3.0)]
        assert valid == [True, True, False]
        assert conf == [0.9, 0.0, 0.1]
        assert validity.statuses(valid) == [
            PointStatus.VALID,
            PointStatus.USER_INVALID,
            PointStatus.FAILED_TRACK,
        ]

    def test_merge_back_count_mismatch(self):
        validity = ValidityController(3)
        with pytest.raises(ValueError):
            validity.merge_back([(1.0, 1.0)], [True], [1.0], [None, None, None])

    def test_merge_back_needs_frozen_position(self):
        validity = ValidityController(2)
        validity.toggle(0)
        with pytest.raises(ValueError):
            validity.merge_back([(1.0, 1.0)], [True], [1.0], [None, (0.0, 0.0)])

    def test_sync_from_processed_row(self):
        """Only processed rows reload the map."""
        validity = ValidityController(2)
        validity.toggle(0)
        pending = SeriesRow(frame=2, time=0.1, points=[PointRecord("A"), PointRecord("B")])
        validity.sync_from_row(pending)
        assert validity.as_list() == [True, False]

        done = SeriesRow(
            frame=1,
            time=0.0,
            points=[
                PointRecord("A", pos=(0.0, 0.0), status=PointStatus.VALID),
                PointRecord("B", pos=(0.0, 0.0), status=PointStatus.USER_INVALID),
            ],
        )
        validity.sync_from_row(done)
        assert validity.as_list() == [False, True]
