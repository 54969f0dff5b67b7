import argparse
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from logging_config import setup_logging
from polaroid import Polaroid
from polaroid_config import DEFAULT_DPI, DEFAULT_OUTPUT_DIR, DEFAULT_OUTPUT_FORMAT, LOG_LEVEL
from polaroid_errors import PolaroidError
from raster_backend import get_backend

logger = logging.getLogger("polaroid.cli")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="polaroid-print",
        description="Turn photos into print-ready polaroid style pages",
        epilog="The output directory may also be given after a trailing '--', e.g. "
               "polaroid-print a.jpg b.jpg -- out/",
    )
    parser.add_argument('files', nargs='+', type=Path, help="input files")
    parser.add_argument('--output', '-o', type=Path, default=None,
                        help=f"output dir (default: {DEFAULT_OUTPUT_DIR})")
    parser.add_argument('--dpi', type=int, default=DEFAULT_DPI, help="print resolution in dots per inch")
    parser.add_argument('--output-format', '-f', default=DEFAULT_OUTPUT_FORMAT,
                        help="output file extension (default: %(default)s)")
    parser.add_argument('--jobs', '-j', type=int, default=1, help="number of files processed in parallel")
    parser.add_argument('--verbose', '-v', action='store_true', help="log every pipeline step")
    return parser


def split_output_dir(argv: Sequence[str]) -> Tuple[List[str], Optional[str]]:
    """Separate a trailing '-- DIR' from the rest of the arguments"""
    argv = list(argv)
    if '--' not in argv:
        return argv, None
    index = argv.index('--')
    trailing = argv[index + 1:]
    if len(trailing) != 1:
        raise SystemExit("polaroid-print: expected exactly one output dir after '--'")
    return argv[:index], trailing[0]


def output_path_for(path: Path, output_dir: Path, output_format: str) -> Path:
    return output_dir / f"{path.stem}.{output_format.lstrip('.')}"


def process_file(path: Path, output_dir: Path, dpi: int, output_format: str) -> Optional[Path]:
    """Run the full polaroid pipeline on one file; returns the written path"""
    logger.info("Process %s file", path)
    if not path.is_file():
        logger.warning("%s is not a file", path)
        return None

    output_file = output_path_for(path, output_dir, output_format)

    polaroid = Polaroid.from_file(path, dpi=dpi)
    polaroid.process()
    polaroid.write(output_file)
    return output_file


def _process_safely(path, output_dir, dpi, output_format):
    try:
        return process_file(path, output_dir, dpi, output_format)
    except PolaroidError as e:
        logger.error("Error occurred while processing %s: %s", path, e)
        return None


def run_batch(files: Sequence[Path], output_dir: Path, dpi: int, output_format: str, jobs: int = 1) -> List[Optional[Path]]:
    """Process every file, skipping the ones that fail"""
    # Initialize the backend once before any worker touches it
    get_backend()

    if jobs <= 1:
        return [_process_safely(path, output_dir, dpi, output_format) for path in files]

    with ThreadPoolExecutor(max_workers=jobs) as executor:
        futures = [executor.submit(_process_safely, path, output_dir, dpi, output_format) for path in files]
        return [future.result() for future in futures]


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    argv, trailing_output = split_output_dir(argv)

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.dpi <= 0:
        parser.error("--dpi must be positive")
    if args.jobs <= 0:
        parser.error("--jobs must be positive")

    setup_logging(logging.DEBUG if args.verbose else LOG_LEVEL)

    if trailing_output is not None:
        output_dir = Path(trailing_output)
    elif args.output is not None:
        output_dir = args.output
    else:
        output_dir = Path(DEFAULT_OUTPUT_DIR)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create output dir %s: %s", output_dir, e)
        return 1

    results = run_batch(args.files, output_dir, args.dpi, args.output_format, jobs=args.jobs)
    written = sum(1 for result in results if result is not None)
    logger.info("Wrote %d of %d files to %s", written, len(results), output_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
