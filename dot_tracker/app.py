from pathlib import Path
from typing import List, Optional, Sequence
import argparse
import logging
import sys

from PyQt5 import QtWidgets

from .controller import DotTrackerController
from .model import (
    CannotOpenSource,
    InvalidFrameRequest,
    SessionRequest,
    Series,
    load_points,
    parse_frame_tokens,
    parse_time_tokens,
    save_series,
)
from .model.settings import parse_params
from .model.review import SessionOutcome, SessionResult
from .model.transforms import TRANSFORMS, compose, get_transform
from .view import DotTrackerWindow

EXIT_SESSION_ERROR = 1
EXIT_REQUEST_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dot-tracker",
        description="Track marker dots through a movie with interactive review and correction.",
    )
    parser.add_argument("video", help="movie file to track")
    parser.add_argument("points", help="point template or a previously saved point series (JSON)")
    parser.add_argument("-o", "--output", help="where to write the point series")
    request = parser.add_mutually_exclusive_group()
    request.add_argument("--frames", nargs="+", metavar="N|A-B", help="1-based frames to process")
    request.add_argument("--times", nargs="+", metavar="START:STOP", help="time intervals in seconds")
    parser.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="point tracker parameter override (e.g. MaxBidirectionalError=2)",
    )
    parser.add_argument(
        "--xform",
        action="append",
        choices=sorted(TRANSFORMS),
        help="image transform applied before tracking; repeat to chain them in order",
    )
    parser.add_argument("--settings", type=Path, help="settings JSON file")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def default_output(video: str, points: str, resumed: bool) -> Path:
    if resumed:
        return Path(points)
    movie = Path(video)
    return movie.with_name(movie.stem + ".dots.json")


# Runs the GUI
def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )
    log = logging.getLogger(__name__)

    controller = DotTrackerController(args.settings)
    try:
        points = load_points(args.points)
        request = SessionRequest(
            movie_path=args.video,
            points=points,
            frames=parse_frame_tokens(args.frames) if args.frames else None,
            times=parse_time_tokens(args.times) if args.times else None,
            params=parse_params(args.param),
            transform=compose(*(get_transform(name) for name in args.xform)) if args.xform else None,
        )
        controller.prepare(request)
    except (CannotOpenSource, InvalidFrameRequest, KeyError, ValueError, OSError) as exc:
        log.error("%s", exc)
        return EXIT_REQUEST_ERROR

    output = Path(args.output) if args.output else default_output(
        args.video, args.points, isinstance(points, Series)
    )
    app = QtWidgets.QApplication(sys.argv[:1])
    window = DotTrackerWindow(controller)
    window.show()
    controller.start()
    app.exec_()
    controller.close()

    return write_result(controller.result, output)


def write_result(result: Optional[SessionResult], output: Path) -> int:
    """Save whatever the session produced and map its outcome to an exit code."""
    log = logging.getLogger(__name__)
    if result is None:
        log.error("Review session ended without a result; nothing written")
        return EXIT_SESSION_ERROR
    save_series(result.series, output)
    if result.outcome is SessionOutcome.FAILED:
        log.error(
            "Session failed at frame %d (%s); partial series written to %s", result.last_frame, result.error, output
        )
        return EXIT_SESSION_ERROR
    if result.completed:
        log.info("All %d frames processed; series written to %s", len(result.series), output)
    else:
        log.info("Session closed early at frame %d; partial series written to %s", result.last_frame, output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
