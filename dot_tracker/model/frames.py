from __future__ import annotations

import math
from collections import Counter
from typing import List, Optional, Sequence, Tuple

from .errors import InvalidFrameRequest
from .series import Series

TimeInterval = Tuple[float, float]


def times_to_frames(times: Sequence[TimeInterval], frame_rate: float) -> List[int]:
    """Map ``(start, stop)`` second intervals onto inclusive 1-based frame ranges."""
    frames: List[int] = []
    for start, stop in times:
        first = int(math.floor(start * frame_rate)) + 1
        last = int(math.floor(stop * frame_rate)) + 1
        frames.extend(range(first, last + 1))
    return frames


def resolve_frames(
    total_frames: int,
    frame_rate: float,
    frames: Optional[Sequence[int]] = None,
    times: Optional[Sequence[TimeInterval]] = None,
    series: Optional[Series] = None,
) -> List[int]:
    """Resolve a frame or time request into the ordered active frame list.

    Raises InvalidFrameRequest for conflicting requests, duplicates, frames
    missing from a resumed series, or an empty result.
    """
    if frames is not None and times is not None:
        raise InvalidFrameRequest("FRAMES and TIMES cannot both be specified")

    requested: Optional[List[int]] = None
    if frames is not None:
        requested = [int(frame) for frame in frames]
    elif times is not None:
        requested = times_to_frames(times, frame_rate)

    if requested is not None:
        requested = [frame for frame in requested if 1 <= frame <= total_frames]
        duplicates = [frame for frame, count in Counter(requested).items() if count > 1]
        if duplicates:
            raise InvalidFrameRequest("FRAMES contains duplicates (must be unique)", duplicates)

    if series is not None:
        available = series.frames()
        if requested is None:
            requested = [frame for frame in available if 1 <= frame <= total_frames]
        else:
            unknown = set(requested) - set(available)
            if unknown:
                raise InvalidFrameRequest("FRAMES not found in the point series", unknown)
    elif requested is None:
        requested = list(range(1, total_frames + 1))

    if not requested:
        raise InvalidFrameRequest("No requested FRAMES are available in the movie")
    return sorted(requested)


def parse_frame_tokens(tokens: Sequence[str]) -> List[int]:
    """Expand ``N`` and ``A-B`` tokens into a frame list, keeping duplicates."""
    frames: List[int] = []
    for token in tokens:
        for part in token.split(","):
            part = part.strip()
            if not part:
                continue
            first, sep, last = part.partition("-")
            try:
                if sep:
                    frames.extend(range(int(first), int(last) + 1))
                else:
                    frames.append(int(first))
            except ValueError:
                raise InvalidFrameRequest(f"Cannot parse frame token {part!r}") from None
    return frames


def parse_time_tokens(tokens: Sequence[str]) -> List[TimeInterval]:
    """Parse ``START:STOP`` tokens (seconds) into time intervals."""
    intervals: List[TimeInterval] = []
    for token in tokens:
        start, sep, stop = token.partition(":")
        try:
            if not sep:
                raise ValueError(token)
            intervals.append((float(start), float(stop)))
        except ValueError:
            raise InvalidFrameRequest(f"Cannot parse time interval {token!r} (expected START:STOP)") from None
    return intervals
