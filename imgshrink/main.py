"""Command line entry point for imgshrink.

Parses the flags, checks preconditions, optionally copies the image, then runs
the shrink pipeline and maps any failure to its exit code.
"""

import argparse
import sys
from pathlib import Path

from imgshrink.__version__ import __version__
from imgshrink.config import settings
from imgshrink.domain.models import CompressionStrategy, PipelineContext
from imgshrink.logging import LoggerFactory, setup_logging
from imgshrink.services.shrink import ShrinkPipeline
from imgshrink.storage import attach
from imgshrink.storage.commands import missing_tools
from imgshrink.storage.compression import select_strategy
from imgshrink.storage.exceptions import ImageNotFoundError, ShrinkError
from imgshrink.storage.images import ensure_root, prepare_image

REQUIRED_TOOLS = ["parted", "e2fsck", "tune2fs", "resize2fs", "debugfs"]


def build_parser():
    parser = argparse.ArgumentParser(
        prog="imgshrink",
        description="Shrink an ext2/3/4 disk image to its minimum size.",
    )
    parser.add_argument("image", nargs="?", help="filesystem image to shrink")
    parser.add_argument(
        "target",
        nargs="?",
        help="copy the image here first and shrink the copy",
    )
    parser.add_argument(
        "-s",
        dest="skip_autoexpand",
        action="store_true",
        help="don't attempt to add autoexpand on first boot",
    )
    parser.add_argument("-v", dest="verbose", action="store_true", help="verbose")
    parser.add_argument(
        "-n", dest="no_update_check", action="store_true", help="disable update check (no-op)"
    )
    parser.add_argument(
        "-r", dest="repair", action="store_true", help="use advanced filesystem repair"
    )
    parser.add_argument(
        "-z",
        dest="compressor",
        action="store_const",
        const="gzip",
        help="compress with gzip",
    )
    parser.add_argument(
        "-Z",
        dest="compressor",
        action="store_const",
        const="xz",
        help="compress with xz",
    )
    parser.add_argument(
        "-a",
        dest="parallel",
        action="store_true",
        help="use parallel compression (pigz for gzip)",
    )
    parser.add_argument(
        "-d", dest="debug", action="store_true", help="mirror all output to a log file"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def warn_missing_tools(strategy: CompressionStrategy) -> None:
    log = LoggerFactory.for_system()
    required = REQUIRED_TOOLS + attach.required_tools()
    if strategy.tool:
        required.append(strategy.tool)
    for tool in missing_tools(required):
        log.warning(f"{tool} not found in PATH. Please install it if needed.")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_file = None
    if args.debug:
        log_file = Path.cwd() / settings.get_setting(
            "log_file_name", settings.DEFAULT_LOG_FILE_NAME
        )
    setup_logging(verbose=args.verbose, log_file=log_file)
    log = LoggerFactory.for_system()
    if log_file is not None:
        log.info(f"Starting debug log {log_file}")

    try:
        if not args.image or not Path(args.image).is_file():
            raise ImageNotFoundError(args.image or "(none given)")
        ensure_root()
        strategy = select_strategy(args.compressor, args.parallel)
        warn_missing_tools(strategy)
        image = prepare_image(Path(args.image), args.target and Path(args.target), strategy)
        context = PipelineContext(
            image=image,
            repair_allowed=args.repair,
            compression=strategy,
            zero_fill=settings.get_bool("zero_fill_enabled", True),
            skip_autoexpand=args.skip_autoexpand,
        )
        ShrinkPipeline(context).run()
    except ImageNotFoundError as error:
        log.error(str(error))
        parser.print_usage(sys.stderr)
        return error.exit_code
    except ShrinkError as error:
        log.error(str(error))
        return error.exit_code
    except OSError as error:
        log.error(f"Could not prepare image: {error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
