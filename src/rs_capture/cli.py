import argparse
import logging
import sys
from typing import List, Optional

from rs_capture.common.utils import ensure_trailing_separator, prepare_output_dir
from rs_capture.core.config import settings
from rs_capture.services.capture_errors import CaptureError
from rs_capture.services.capture_scheduler import CaptureScheduler
from rs_capture.services.frame_exporter import FrameExporter

logger = logging.getLogger("rs_capture")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rs-capture",
        description="Capture aligned color and depth frames from a RealSense camera and save them as PNG files."
    )
    parser.add_argument("rate", type=int,
                        help=f"Output frame rate, 1 to {settings.SOURCE_RATE_CAP}.")
    parser.add_argument("output_dir",
                        help="Directory the color_/ir_/depth_ files are written to.")
    parser.add_argument("max_count", type=int, nargs="?", default=0,
                        help="Stop after this many exports (0 or absent: run until the stream ends).")
    parser.add_argument("--warmup", type=int, default=settings.WARMUP_FRAMES,
                        help="Frames dropped before capturing so auto-exposure can settle.")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL,
                        help="Logging level (DEBUG, INFO, WARNING, ...).")
    return parser


def main(argv: Optional[List[str]] = None, source=None, aligner=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format=settings.LOG_FORMAT)

    if source is None or aligner is None:
        # pyrealsense2 is only needed when talking to a real camera
        from rs_capture.services.realsense_source import RealSenseAligner, RealSenseFrameSource
        source = source or RealSenseFrameSource()
        aligner = aligner or RealSenseAligner()

    scheduler = CaptureScheduler(source, aligner, FrameExporter())
    result = scheduler.configure(args.rate, ensure_trailing_separator(args.output_dir), args.max_count)
    if not result.ok:
        parser.error(str(result.error))
    if args.warmup < 0:
        parser.error(f"--warmup must not be negative, got {args.warmup}")
    try:
        prepare_output_dir(args.output_dir)
    except OSError as e:
        parser.error(f"Cannot write to output directory {args.output_dir}: {e}")

    try:
        source.start()
        scheduler.warm_up(args.warmup)
        summary = scheduler.run()
    except CaptureError as e:
        logger.error(f"Capture aborted: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping capture.")
        return 130
    finally:
        source.stop()

    logger.info(f"Saved {summary.exported} frame(s) to {args.output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
