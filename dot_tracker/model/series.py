"""Persistent grid of tracked point observations.

A series holds one row per selected movie frame and one column per labeled
point. Column count, order and labels are fixed by the point template the
series was created from. Rows are stored in ascending frame order.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .entities import PointRecord, PointStatus, SeriesRow

_log = logging.getLogger(__name__)


def frame_time(frame: int, frame_rate: float) -> float:
    return (frame - 1) / frame_rate if frame_rate > 0 else 0.0


class Series:
    def __init__(self, labels: Sequence[str], rows: Iterable[SeriesRow] = ()) -> None:
        self._labels: Tuple[str, ...] = tuple(labels)
        if len(set(self._labels)) != len(self._labels):
            raise ValueError(f"Point labels must be unique: {list(self._labels)}")
        self._rows: List[SeriesRow] = []
        self._row_by_frame: Dict[int, int] = {}
        for row in rows:
            self._append(row)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def from_template(
        cls, template: Sequence[PointRecord], frames: Sequence[int], frame_rate: float
    ) -> "Series":
        """Create a fresh series, seeding the first row with the template positions."""
        if not template:
            raise ValueError("Point template is empty.")
        labels = [point.label for point in template]
        rows = []
        for index, frame in enumerate(frames):
            if index == 0:
                points = [PointRecord(label=p.label, pos=p.pos) for p in template]
            else:
                points = [PointRecord(label=label) for label in labels]
            rows.append(SeriesRow(frame=int(frame), time=frame_time(int(frame), frame_rate), points=points))
        return cls(labels, rows)

    def _append(self, row: SeriesRow) -> None:
        if row.labels != list(self._labels):
            raise ValueError(f"Row for frame {row.frame} has labels {row.labels}, expected {list(self._labels)}")
        if self._rows and row.frame <= self._rows[-1].frame:
            raise ValueError(f"Series frames must be unique and ascending (frame {row.frame})")
        self._row_by_frame[row.frame] = len(self._rows)
        self._rows.append(row)

    # ------------------------------------------------------------------
    # Store contract
    # ------------------------------------------------------------------
    @property
    def labels(self) -> List[str]:
        return list(self._labels)

    @property
    def point_count(self) -> int:
        return len(self._labels)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[SeriesRow]:
        return iter(self._rows)

    def get(self, row: int) -> SeriesRow:
        return self._rows[row]

    def set(self, row: int, points: Sequence[PointRecord]) -> None:
        labels = [point.label for point in points]
        if labels != list(self._labels):
            raise ValueError(f"Cannot change point labels or order (got {labels})")
        self._rows[row].points = [point.copy() for point in points]

    def frames(self) -> List[int]:
        return [row.frame for row in self._rows]

    def row_for_frame(self, frame: int) -> int:
        try:
            return self._row_by_frame[int(frame)]
        except KeyError:
            raise KeyError(f"Frame {frame} is not part of this series") from None

    def find_first_unprocessed_row(self, rows: Optional[Sequence[int]] = None) -> Optional[int]:
        """Return the position (within ``rows``) of the first row with any untracked column."""
        order = range(len(self._rows)) if rows is None else rows
        for position, row_index in enumerate(order):
            if not self._rows[row_index].is_processed:
                return position
        return None

    def resume_index(self, rows: Optional[Sequence[int]] = None) -> int:
        order = list(range(len(self._rows))) if rows is None else list(rows)
        if not order:
            return 0
        found = self.find_first_unprocessed_row(order)
        if found is None:
            return len(order) - 1
        return max(found - 1, 0)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        rows = []
        for row in self._rows:
            rows.append(
                {
                    "frame": row.frame,
                    "time": row.time,
                    "points": [
                        {
                            "pos": None if p.pos is None else [float(p.pos[0]), float(p.pos[1])],
                            "status": None if p.status is None else int(p.status),
                            "confidence": p.confidence,
                        }
                        for p in row.points
                    ],
                }
            )
        return {"labels": list(self._labels), "rows": rows}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Series":
        labels = list(data["labels"])
        rows = []
        for row_data in data.get("rows", []):
            entries = row_data.get("points", [])
            if len(entries) != len(labels):
                raise ValueError(f"Frame {row_data.get('frame')} has {len(entries)} points, expected {len(labels)}")
            points = []
            for label, entry in zip(labels, entries):
                pos = entry.get("pos")
                status = entry.get("status")
                points.append(
                    PointRecord(
                        label=label,
                        pos=None if pos is None else (float(pos[0]), float(pos[1])),
                        status=None if status is None else PointStatus(int(status)),
                        confidence=entry.get("confidence"),
                    )
                )
            rows.append(SeriesRow(frame=int(row_data["frame"]), time=float(row_data["time"]), points=points))
        return cls(labels, rows)

    def save(self, path: Union[str, Path]) -> None:
        save_series(self, path)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def to_arrays(self, drop_untracked: bool = True) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return ``(xy, conf, frames)``.

        ``xy`` is shaped ``(n_frames, 2, n_points)`` and ``conf`` is
        ``(n_frames, n_points)``; missing values are NaN. With
        ``drop_untracked`` the trailing rows without positions are removed.
        """
        rows = list(self._rows)
        if drop_untracked:
            while rows and not rows[-1].has_positions:
                rows.pop()
        xy = np.full((len(rows), 2, self.point_count), np.nan, dtype=np.float64)
        conf = np.full((len(rows), self.point_count), np.nan, dtype=np.float64)
        for i, row in enumerate(rows):
            for k, point in enumerate(row.points):
                if point.pos is not None:
                    xy[i, :, k] = point.pos
                if point.confidence is not None:
                    conf[i, k] = point.confidence
        frames = np.array([row.frame for row in rows], dtype=np.int64)
        return xy, conf, frames


def save_series(series: Series, path: Union[str, Path]) -> None:
    path = Path(path)
    path.write_text(json.dumps(series.to_dict(), indent=2))
    _log.info("Saved series with %d frames x %d points to %s", len(series), series.point_count, path)


def load_series(path: Union[str, Path]) -> Series:
    path = Path(path)
    return Series.from_dict(json.loads(path.read_text()))


def template_from_dict(data: Union[Dict[str, Any], List[Any]]) -> List[PointRecord]:
    entries = data.get("points", []) if isinstance(data, dict) else data
    template = []
    for entry in entries:
        pos = entry.get("pos")
        template.append(
            PointRecord(label=str(entry["label"]), pos=None if pos is None else (float(pos[0]), float(pos[1])))
        )
    if not template:
        raise ValueError("Point template is empty.")
    if any(point.pos is None for point in template):
        raise ValueError("Every template point needs an initial position.")
    return template


def load_points(path: Union[str, Path]) -> Union[List[PointRecord], Series]:
    """Load either a point template or a previously saved series."""
    data = json.loads(Path(path).read_text())
    if isinstance(data, dict) and "rows" in data:
        return Series.from_dict(data)
    return template_from_dict(data)
