"""PhotoDesk CLI batch editor.

Removes backgrounds, crops to ID-photo sizes and lays the results out on
print sheets without a browser.
"""

import argparse
import asyncio
import logging
import os
import sys
import time
from typing import List, Optional

from photodesk.domain.errors import PhotoDeskError
from photodesk.domain.models import ItemStatus, PrintSheetSpec
from photodesk.features.units.models import CROP_PRESETS, CUSTOM_PRESET, CropSettings, Unit
from photodesk.kernel.image.logic import SUPPORTED_EXTENSIONS, parse_color
from photodesk.kernel.system.config import APP_CONFIG, PAPER_SIZES_IN
from photodesk.kernel.system.logging import setup_logging
from photodesk.orchestration.batch import BatchOptions, BatchProcessor
from photodesk.services.export.service import ExportService

CROP_CHOICES = tuple(CROP_PRESETS.keys()) + (CUSTOM_PRESET,)
UNIT_CHOICES = tuple(u.value for u in Unit)
PAPER_CHOICES = tuple(PAPER_SIZES_IN.keys())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photodesk",
        description="PhotoDesk -- batch photo editor and print sheet generator",
        epilog="Example: photodesk --remove-background --crop 35x45mm --paper 4x6 ./portraits/",
    )

    parser.add_argument(
        "inputs",
        nargs="*",
        metavar="FILE_OR_DIR",
        help="Input images or directories containing images",
    )

    parser.add_argument(
        "--remove-background",
        action="store_true",
        default=False,
        help="Remove the background with the configured AI backend",
    )

    parser.add_argument(
        "--crop",
        choices=CROP_CHOICES,
        default=None,
        metavar="PRESET",
        help=f"Crop to a photo size: {', '.join(CROP_CHOICES)} (default: no crop)",
    )

    parser.add_argument(
        "--width",
        default=None,
        metavar="NUMBER",
        help="Custom crop width (with --crop custom)",
    )

    parser.add_argument(
        "--height",
        default=None,
        metavar="NUMBER",
        help="Custom crop height (with --crop custom)",
    )

    parser.add_argument(
        "--unit",
        choices=UNIT_CHOICES,
        default=Unit.MM.value,
        help="Unit of --width/--height (default: mm)",
    )

    parser.add_argument(
        "--dpi",
        type=int,
        default=None,
        metavar="INT",
        help=f"Resolution used to convert crop sizes to pixels (default: {APP_CONFIG.crop_dpi})",
    )

    parser.add_argument(
        "--background",
        default="#ffffff",
        metavar="COLOR",
        help="Stamp background on print sheets, e.g. '#ffffff' or 'transparent' (default: #ffffff)",
    )

    parser.add_argument(
        "--paper",
        choices=PAPER_CHOICES,
        default="4x6",
        help="Print sheet size in inches (default: 4x6)",
    )

    parser.add_argument(
        "--no-print",
        action="store_true",
        default=False,
        help="Only export the processed images, skip print sheets",
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        metavar="INT",
        help=f"Images processed concurrently (default: {APP_CONFIG.max_workers})",
    )

    parser.add_argument(
        "--output",
        default=None,
        metavar="DIR",
        help="Output directory (default: PHOTODESK_EXPORT_DIR or ./export)",
    )

    parser.add_argument(
        "--filename-pattern",
        default=None,
        metavar="TEMPLATE",
        help=f'Jinja2 filename template (default: "{APP_CONFIG.edit_filename_pattern}")',
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Verbose logging",
    )

    return parser


def discover_files(inputs: List[str]) -> List[str]:
    """Resolves input paths to a sorted list of supported image files."""
    files = []
    for input_path in inputs:
        path = os.path.abspath(input_path)
        if os.path.isfile(path):
            ext = os.path.splitext(path)[1].lower()
            if ext in SUPPORTED_EXTENSIONS:
                files.append(path)
            else:
                print(f"Warning: Skipping unsupported file: {path}", file=sys.stderr)
        elif os.path.isdir(path):
            for root, _dirs, filenames in os.walk(path):
                for fname in sorted(filenames):
                    ext = os.path.splitext(fname)[1].lower()
                    if ext in SUPPORTED_EXTENSIONS:
                        files.append(os.path.join(root, fname))
        else:
            print(f"Warning: Path not found: {path}", file=sys.stderr)
    return files


def build_options(args: argparse.Namespace) -> BatchOptions:
    """Raises InputValidationError for bad crop sizes, units or DPI."""
    crop = None
    if args.crop == CUSTOM_PRESET:
        crop = CropSettings.parse(args.width, args.height, args.unit)
    elif args.crop is not None:
        crop = CropSettings.from_preset(args.crop)

    overrides = {}
    if args.dpi is not None:
        overrides["crop_dpi"] = args.dpi
    if args.workers is not None:
        overrides["max_workers"] = args.workers
    return BatchOptions(remove_background=args.remove_background, crop=crop, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns 0 when every image succeeded, 1 otherwise."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    files = discover_files(args.inputs)
    if not files:
        print("Error: No supported image files found.", file=sys.stderr)
        return 1

    try:
        options = build_options(args)
        # Reject bad colours before any remote call is made
        parse_color(args.background)
        sheet_spec = None if args.no_print else PrintSheetSpec(paper=args.paper, background=args.background)
    except PhotoDeskError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    processor = BatchProcessor(options)
    processor.add_files(files)
    exporter = ExportService(args.output)

    total = len(files)
    print(f"Processing {total} file(s) -> {exporter.export_dir}", file=sys.stderr)
    t_start = time.monotonic()

    asyncio.run(processor.run())

    for i, item in enumerate(processor.items, 1):
        if item.status == ItemStatus.SUCCESS:
            assert item.result is not None
            exporter.export_edit(item.name, item.result, operation="edited", pattern=args.filename_pattern)
            print(f"  [{i}/{total}] {item.name} OK", file=sys.stderr)
        else:
            print(f"  [{i}/{total}] {item.name} ERROR: {item.error}", file=sys.stderr)

    failed = total - len(processor.successful())

    if sheet_spec is not None and processor.successful():
        result = processor.export_prints(sheet_spec)
        exporter.export_sheets(result, sheet_spec.paper)
        for name, message in result.failures:
            print(f"  {name}: print sheet skipped ({message})", file=sys.stderr)
        failed += len(result.failures)

    total_time = time.monotonic() - t_start
    print(f"Done: {total - failed}/{total} succeeded in {total_time:.1f}s", file=sys.stderr)

    return 1 if failed > 0 else 0


def cli_entry() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    sys.exit(main())
