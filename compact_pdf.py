#!/usr/bin/env python3
"""
compact_pdf.py - PDF compression CLI.

Prunes metadata, downsamples images and repacks the object graph.
Each file is compressed in its own worker process.

Usage:
    python compact_pdf.py input.pdf -o output.pdf
    python compact_pdf.py input.pdf --level high --quality 40
    python compact_pdf.py *.pdf --output-dir ./compressed/
"""

import argparse
import logging
import sys
from pathlib import Path

from pdf_compactor import (
    CompressionFailure,
    CompressionLevel,
    CompressionOptions,
    CompressionRequest,
    estimate_compressed_size,
    submit,
)
from pdf_compactor.models import DEFAULT_QUALITY


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Shrink PDFs by pruning metadata and downsampling images.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python compact_pdf.py report.pdf -o small.pdf
  python compact_pdf.py report.pdf --level high --quality 25
  python compact_pdf.py *.pdf --output-dir ./out/

Levels:
  low     metadata only, light image downsampling
  medium  also drops unused resources (default)
  high    also drops structure tree, layers, page transitions
          and (without --preserve-quality) annotations
"""
    )

    parser.add_argument(
        "input",
        nargs="+",
        type=Path,
        help="Input PDF file(s)"
    )

    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "-o", "--output",
        type=Path,
        help="Output file (single input only)"
    )
    output.add_argument(
        "--output-dir",
        type=Path,
        help="Output directory (for multiple files)"
    )

    parser.add_argument(
        "-q", "--quality",
        type=int,
        default=DEFAULT_QUALITY,
        help=f"Image quality 0-100 (default: {DEFAULT_QUALITY})"
    )

    parser.add_argument(
        "-l", "--level",
        choices=[level.value for level in CompressionLevel],
        default=CompressionLevel.MEDIUM.value,
        help="Compression level (default: medium)"
    )

    parser.add_argument(
        "-p", "--preserve-quality",
        action="store_true",
        help="Keep annotations and full chroma resolution"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    return parser.parse_args(argv)


def print_progress(event):
    """Print progress bar."""
    width = 40
    filled = int(width * event.progress / 100)
    bar = "=" * filled + "-" * (width - filled)
    label = f" {event.message}" if event.message else ""
    print(f"\r[{bar}] {event.progress:3d}%{label:<40}", end="", file=sys.stderr)
    if event.progress == 100:
        print(file=sys.stderr)


def compress_file(input_path: Path, output_path: Path, options: CompressionOptions):
    """Compress one file in a worker process. Writes output only on success."""
    try:
        data = input_path.read_bytes()
    except OSError as e:
        return CompressionFailure(f"Could not read {input_path}: {e}")

    estimate = estimate_compressed_size(len(data), options)
    logging.getLogger(__name__).info(
        f"{input_path.name}: {len(data):,} bytes, estimated ~{estimate:,} bytes"
    )

    with submit(CompressionRequest(data, options)) as handle:
        outcome = handle.result(progress_callback=print_progress)

    if outcome.succeeded:
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(outcome.output_bytes)
        except OSError as e:
            return CompressionFailure(f"Could not write {output_path}: {e}")
    return outcome


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        options = CompressionOptions(
            quality=args.quality,
            compression_level=args.level,
            preserve_quality=args.preserve_quality,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Validate inputs
    valid_inputs = []
    for p in args.input:
        if not p.exists():
            print(f"Error: File not found: {p}", file=sys.stderr)
            continue
        if p.suffix.lower() != ".pdf":
            print(f"Warning: Skipping non-PDF: {p}", file=sys.stderr)
            continue
        valid_inputs.append(p)

    if not valid_inputs:
        print("Error: No valid PDF files", file=sys.stderr)
        return 1

    # Determine output
    if len(valid_inputs) > 1:
        if args.output:
            print("Error: Use --output-dir for multiple files", file=sys.stderr)
            return 1
        if not args.output_dir:
            args.output_dir = Path(".")

    # Process single file
    if len(valid_inputs) == 1 and not args.output_dir:
        input_path = valid_inputs[0]
        output_path = args.output or input_path.with_name(input_path.stem + "_compressed.pdf")

        outcome = compress_file(input_path, output_path, options)
        if outcome.succeeded:
            print(f"\n{outcome.summary()}")
            return 0
        print(f"Error: {outcome.error_message}", file=sys.stderr)
        return 1

    # Batch processing
    args.output_dir.mkdir(parents=True, exist_ok=True)

    total_in = 0
    total_out = 0
    successes = 0

    for i, input_path in enumerate(valid_inputs):
        output_path = args.output_dir / f"{input_path.stem}_compressed.pdf"
        print(f"\n[{i+1}/{len(valid_inputs)}] {input_path.name}")

        outcome = compress_file(input_path, output_path, options)

        if outcome.succeeded:
            total_in += outcome.original_size
            total_out += outcome.output_size
            successes += 1
        else:
            print(f"Error: {outcome.error_message}", file=sys.stderr)

    print(f"\n{'='*50}")
    print(f"Batch complete: {successes}/{len(valid_inputs)} files")
    print(f"Total: {total_in:,} -> {total_out:,} bytes")
    if total_in > 0:
        print(f"Reduction: {(1 - total_out/total_in)*100:.1f}%")

    return 0 if successes == len(valid_inputs) else 1


if __name__ == "__main__":
    sys.exit(main())
