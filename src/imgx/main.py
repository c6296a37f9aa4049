import argparse
import sys
from datetime import datetime
from typing import List, Optional

from loguru import logger

from imgx import config
from imgx.errors import ImgxError, RecentsError
from imgx.file_io import (
    compression_ratio,
    format_file_size,
    load_source_file,
    save_processed,
    to_data_url,
)
from imgx.logger import setup_logging
from imgx.models import ImageFormat
from imgx.pipeline import options as opts
from imgx.pipeline.recents import RecentImagesStore
from imgx.pipeline.runner import run_pipeline

FORMAT_CHOICES = {
    'jpeg': ImageFormat.JPEG,
    'jpg': ImageFormat.JPEG,
    'png': ImageFormat.PNG,
    'webp': ImageFormat.WEBP,
    'gif': ImageFormat.GIF,
}


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="imgx", description="Single-image edit pipeline")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug output on the console")
    p.add_argument("--no-log-file", action="store_true", help=f"Do not write {config.LOG_FILE}")
    sub = p.add_subparsers(dest="command", required=True)

    proc = sub.add_parser("process", help="Run the pipeline over one image")
    proc.add_argument("input", help="JPEG, PNG, WebP or GIF file")
    proc.add_argument("-o", "--output-dir", default=".", help="Where image.<ext> is written")
    proc.add_argument("--data-url", action="store_true", help="Print the result as a data URL instead of saving")
    proc.add_argument("--remember", action="store_true", help="Add the input to the recent images")

    g_resize = proc.add_argument_group("Resize")
    g_resize.add_argument("--width", type=int)
    g_resize.add_argument("--height", type=int)
    g_resize.add_argument("--no-aspect", action="store_true", help="Do not keep the aspect ratio")

    g_quality = proc.add_argument_group("Compress / Convert")
    g_quality.add_argument("--quality", type=int, help="Compression quality 1-100 (default 80)")
    g_quality.add_argument("--format", choices=sorted(FORMAT_CHOICES), help="Output format (default: input format)")
    g_quality.add_argument("--convert-quality", type=int, help="Conversion quality 1-100 (default 100)")

    g_geo = proc.add_argument_group("Transform")
    g_geo.add_argument("--angle", type=float, help="Clockwise rotation in degrees")
    g_geo.add_argument("--flip-h", action="store_true")
    g_geo.add_argument("--flip-v", action="store_true")
    g_geo.add_argument("--skew-x", type=float, help="Degrees, -45 to 45")
    g_geo.add_argument("--skew-y", type=float, help="Degrees, -45 to 45")

    g_filter = proc.add_argument_group("Filter")
    g_filter.add_argument("--opacity", type=float, help="0-1")
    g_filter.add_argument("--brightness", type=float, help="Multiplier, 1 = unchanged")
    g_filter.add_argument("--contrast", type=float, help="Multiplier, 1 = unchanged")
    g_filter.add_argument("--grayscale", type=float, help="0-1")
    g_filter.add_argument("--sepia", type=float, help="0-1")
    g_filter.add_argument("--invert", type=float, help="0-1")
    g_filter.add_argument("--blur", type=float, help="Pixels")

    rec = sub.add_parser("recents", help="Manage recent images")
    rec.add_argument("action", choices=["list", "clear"])

    return p


def _given(**values):
    return {k: v for k, v in values.items() if v is not None}


def options_from_args(args: argparse.Namespace, source) -> opts.PipelineOptions:
    """Stage defaults for `source` overridden by whatever was given on the command line."""
    options = opts.default_options(source)

    keep_aspect = not args.no_aspect
    resize = opts.ResizeOptions(source.width, source.height, keep_aspect)
    if args.width is not None or args.height is not None:
        # Aspect-locked: an omitted side is derived from the given one
        missing_w, missing_h = (0, 0) if keep_aspect else (source.width, source.height)
        resize = opts.ResizeOptions(
            width=args.width if args.width is not None else missing_w,
            height=args.height if args.height is not None else missing_h,
            maintain_aspect_ratio=keep_aspect,
        )

    convert = options.convert
    if args.format:
        convert = opts.ConvertOptions(format=FORMAT_CHOICES[args.format], quality=convert.quality)
    if args.convert_quality is not None:
        convert = opts.ConvertOptions(format=convert.format, quality=args.convert_quality)

    return opts.PipelineOptions(
        resize=resize,
        compress=opts.CompressOptions(**_given(quality=args.quality)),
        convert=convert,
        transform=opts.TransformOptions(
            horizontal=args.flip_h,
            vertical=args.flip_v,
            **_given(angle=args.angle, skew_x=args.skew_x, skew_y=args.skew_y),
        ),
        filter=opts.FilterOptions(**_given(
            opacity=args.opacity,
            brightness=args.brightness,
            contrast=args.contrast,
            grayscale=args.grayscale,
            sepia=args.sepia,
            invert=args.invert,
            blur=args.blur,
        )),
    ).clamped(source)


def _recents_store() -> RecentImagesStore:
    return RecentImagesStore(config.load_user_config()['recents_path'])


def cmd_process(args: argparse.Namespace) -> int:
    source = load_source_file(args.input)
    logger.info(f"🖼️  {source.name}: {source.width}x{source.height} {source.format.value} ({format_file_size(source.size)})")

    if args.remember:
        try:
            _recents_store().add(source)
        except RecentsError as e:
            logger.warning(f"⚠️  {e}; continuing without updating recent images")

    result = run_pipeline(source, options_from_args(args, source))
    logger.info(
        f"  ✨ Result: {result.width}x{result.height} {result.format.value} "
        f"({format_file_size(result.size)}, {compression_ratio(source.size, result.size)}% saved)"
    )

    if args.data_url:
        print(to_data_url(result))
    else:
        save_processed(result, args.output_dir)
    result.release()
    return 0


def cmd_recents(args: argparse.Namespace) -> int:
    store = _recents_store()
    if args.action == "clear":
        store.clear()
        logger.info("Recent images cleared")
        return 0

    records = store.list()
    if not records:
        print("No recent images")
    for record in records:
        created = datetime.fromtimestamp(record.created_at / 1000).strftime('%Y-%m-%d %H:%M:%S')
        print(f"{record.id}  {created}  {record.name}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_argparser().parse_args(argv)
    setup_logging(verbose=args.verbose, log_to_file=not args.no_log_file)

    try:
        if args.command == "process":
            return cmd_process(args)
        return cmd_recents(args)
    except ImgxError as e:
        logger.error(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
