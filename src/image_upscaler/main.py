"""Main module for the image upscaler CLI."""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .core import (
    BatchProgress,
    ConfigurationError,
    ImageUpscalerError,
    PipelineFactory,
    ProcessingSettings,
    SourceImage,
    get_logger,
    setup_logger,
)
from .core.image_utils import OUTPUT_EXTENSION

# Not registered by every Python version
mimetypes.add_type("image/webp", ".webp")
mimetypes.add_type("image/avif", ".avif")


def positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-upscaler",
        description="Image Upscaler - batch resize, PNG conversion and AI upscaling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Resize to 1300px and upscale to 2560px, writing PNGs to ./output
  image-upscaler process photo1.jpg photo2.webp

  # Resize only, named product_1.png, product_2.png, ... and zipped
  image-upscaler process *.jpg --no-upscale --prefix product --archive batch.zip

  # Show version
  image-upscaler version
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    process_parser = subparsers.add_parser(
        "process", help="Resize, convert and optionally upscale image files"
    )
    process_parser.add_argument("files", nargs="+", help="Image files to process")
    process_parser.add_argument(
        "--max-dimension",
        type=positive_int,
        default=1300,
        help="Longest side after resizing (default: 1300)",
    )
    process_parser.add_argument(
        "--target-size",
        type=positive_int,
        default=2560,
        help="Longest side to reach by upscaling (default: 2560)",
    )
    process_parser.add_argument(
        "--no-upscale", action="store_true", help="Skip the AI upscaling stage"
    )
    process_parser.add_argument(
        "--prefix", default=None, help="Name outputs <prefix>_1, <prefix>_2, ..."
    )
    process_parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for the processed PNGs (default: ./output unless --archive is given)",
    )
    process_parser.add_argument(
        "--archive", default=None, help="Write all successful results to this zip file"
    )
    process_parser.add_argument(
        "--concurrency",
        type=positive_int,
        default=1,
        help="Number of images processed at once (default: 1)",
    )
    process_parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )

    subparsers.add_parser("version", help="Show version information")
    return parser


def load_sources(paths: List[str], logger) -> List[SourceImage]:
    """Read files into ``SourceImage`` records, skipping unreadable paths."""
    sources = []
    for raw_path in paths:
        path = Path(raw_path)
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error(f"Cannot read {path}: {e}")
            continue
        mime_type, _ = mimetypes.guess_type(path.name)
        sources.append(
            SourceImage(
                data=data,
                mime_type=mime_type or "application/octet-stream",
                original_name=path.name,
            )
        )
    return sources


def print_progress(event: BatchProgress) -> None:
    outcome = event.outcome
    if outcome.success:
        detail = f"{outcome.final_size}"
        if outcome.was_upscaled:
            detail += f" (upscaled {outcome.scale_factor:.2f}x)"
        elif outcome.upscale_error:
            detail += f" (upscale failed: {outcome.upscale_error})"
        status = f"ok -> {outcome.processed_name}.{OUTPUT_EXTENSION} {detail}"
    else:
        status = f"failed: {outcome.error}"
    print(f"[{event.completed}/{event.total}] {outcome.original_name}: {status}")


async def run_process(args: argparse.Namespace) -> int:
    """Run one batch from parsed CLI arguments and return the exit code."""
    setup_logger("image-upscaler", level="DEBUG" if args.debug else None)
    logger = get_logger("image-upscaler.cli")

    sources = load_sources(args.files, logger)
    if not sources:
        logger.error("No readable input files")
        return 1

    settings = ProcessingSettings(
        max_dimension=args.max_dimension,
        enable_upscaling=not args.no_upscale,
        target_size=args.target_size,
        name_prefix=args.prefix,
    )

    try:
        pipeline = PipelineFactory.create_pipeline(
            config_overrides={"concurrency": args.concurrency}
        )
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    async with pipeline:
        result = await pipeline.submit_batch(sources, settings, on_progress=print_progress)
        successes = [outcome for outcome in result.outcomes if outcome.success]

        try:
            output_dir = args.output_dir
            if output_dir is None and args.archive is None:
                output_dir = "output"
            if output_dir is not None and successes:
                target = Path(output_dir)
                target.mkdir(parents=True, exist_ok=True)
                for outcome in successes:
                    data = await pipeline.download_one(outcome)
                    path = target / f"{outcome.processed_name}.{OUTPUT_EXTENSION}"
                    path.write_bytes(data)
                    logger.info(f"Wrote {path}")

            if args.archive is not None and successes:
                archive = await pipeline.download_archive(successes)
                archive_path = Path(args.archive)
                archive_path.parent.mkdir(parents=True, exist_ok=True)
                archive_path.write_bytes(archive)
                logger.info(f"Wrote archive {archive_path} ({len(archive)} bytes)")
        except (ImageUpscalerError, OSError) as e:
            logger.error(f"Failed to write results: {e}")
            return 1
        finally:
            await pipeline.discard_run(result.run_id)

    print(
        f"Processed {result.success_count}/{len(result.outcomes)} image(s) "
        f"in {result.processing_time:.1f}s"
    )
    return 0 if result.success_count > 0 else 1


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the command-line interface (CLI) of the image upscaler.

    The "process" command runs one batch over local files and exits with 1
    when no image succeeded. The "version" command prints version details.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "process":
        sys.exit(asyncio.run(run_process(args)))

    elif args.command == "version":
        print("Image Upscaler CLI")
        print(f"Version {__version__}")
        print("Batch resize, PNG conversion and AI upscaling")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
