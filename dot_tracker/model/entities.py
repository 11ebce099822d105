from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Dict, List, Optional, Sequence, Tuple

Point2D = Tuple[float, float]
ColorRGB = Tuple[int, int, int]


class PointStatus(IntEnum):
    VALID = 0
    FAILED_TRACK = 1
    USER_INVALID = 2

    def resolve_failure(self) -> "PointStatus":
        # Keeps only the user-invalid bit.
        return PointStatus(int(self) & int(PointStatus.USER_INVALID))


STATUS_COLOURS: Dict[Optional[PointStatus], ColorRGB] = {
    None: (0, 255, 255),
    PointStatus.VALID: (0, 255, 0),
    PointStatus.FAILED_TRACK: (255, 0, 0),
    PointStatus.USER_INVALID: (0, 0, 0),
}


def status_colour(status: Optional[PointStatus]) -> ColorRGB:
    return STATUS_COLOURS[status]


@dataclass
class PointRecord:
    label: str
    pos: Optional[Point2D] = None
    status: Optional[PointStatus] = None
    confidence: Optional[float] = None

    def copy(self) -> "PointRecord":
        return replace(self)


@dataclass
class SeriesRow:
    frame: int
    time: float
    points: List[PointRecord] = field(default_factory=list)

    @property
    def labels(self) -> List[str]:
        return [point.label for point in self.points]

    @property
    def has_positions(self) -> bool:
        return bool(self.points) and all(point.pos is not None for point in self.points)

    @property
    def is_processed(self) -> bool:
        return bool(self.points) and all(point.status is not None for point in self.points)

    def positions(self) -> List[Optional[Point2D]]:
        return [point.pos for point in self.points]

    def statuses(self) -> List[Optional[PointStatus]]:
        return [point.status for point in self.points]

    def set_positions(self, positions: Sequence[Point2D]) -> None:
        if len(positions) != len(self.points):
            raise ValueError(
                f"Expected {len(self.points)} positions for frame {self.frame}, got {len(positions)}"
            )
        for point, pos in zip(self.points, positions):
            point.pos = (float(pos[0]), float(pos[1]))

    def copy(self) -> "SeriesRow":
        return SeriesRow(frame=self.frame, time=self.time, points=[p.copy() for p in self.points])
