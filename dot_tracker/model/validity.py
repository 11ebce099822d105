from __future__ import annotations

from typing import List, Optional, Sequence, Tuple, TypeVar

from .entities import Point2D, PointStatus, SeriesRow

T = TypeVar("T")


class ValidityController:
    """Per-point user exclusion map.

    Excluded points are left out of the tracker input and frozen at their last
    known position when tracker results are merged back into a full row.
    """

    def __init__(self, point_count: int) -> None:
        self._invalid: List[bool] = [False] * point_count

    def __len__(self) -> int:
        return len(self._invalid)

    def __getitem__(self, point: int) -> bool:
        return self._invalid[point]

    @property
    def any_invalid(self) -> bool:
        return any(self._invalid)

    def as_list(self) -> List[bool]:
        return list(self._invalid)

    def toggle(self, point: int) -> bool:
        self._invalid[point] = not self._invalid[point]
        return self._invalid[point]

    def sync_from_row(self, row: SeriesRow) -> None:
        """Reload the map from a processed row's user-invalid flags."""
        if not row.is_processed:
            return
        self._invalid = [status == PointStatus.USER_INVALID for status in row.statuses()]

    def active_subset(self, items: Sequence[T]) -> List[T]:
        return [item for item, invalid in zip(items, self._invalid) if not invalid]

    def active_count(self) -> int:
        return self._invalid.count(False)

    def merge_back(
        self,
        points: Sequence[Point2D],
        valid: Sequence[bool],
        confidence: Sequence[float],
        last_full: Sequence[Optional[Point2D]],
    ) -> Tuple[List[Point2D], List[bool], List[float]]:
        if len(points) != self.active_count():
            raise ValueError(f"Tracker returned {len(points)} points for {self.active_count()} active points")
        full_points: List[Point2D] = []
        full_valid: List[bool] = []
        full_conf: List[float] = []
        tracked = iter(zip(points, valid, confidence))
        for k, invalid in enumerate(self._invalid):
            if invalid:
                frozen = last_full[k]
                if frozen is None:
                    raise ValueError(f"No last known position for excluded point {k}")
                full_points.append(frozen)
                full_valid.append(True)
                full_conf.append(0.0)
            else:
                pos, ok, conf = next(tracked)
                full_points.append((float(pos[0]), float(pos[1])))
                full_valid.append(bool(ok))
                full_conf.append(float(conf))
        return full_points, full_valid, full_conf

    def statuses(self, valid: Sequence[bool]) -> List[PointStatus]:
        result = []
        for ok, invalid in zip(valid, self._invalid):
            if invalid:
                result.append(PointStatus.USER_INVALID)
            elif ok:
                result.append(PointStatus.VALID)
            else:
                result.append(PointStatus.FAILED_TRACK)
        return result
