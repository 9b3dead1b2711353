"""cutkmz.py — Convert name-geo-anchored JPG map images into overlay KMZs.

Rather than expect metadata files with geo-positioning information for the
image, the bounding box is encoded in the file name.  Harder to lose:

    <map-name>_<North-lat>_<South-lat>_<East-long>_<West-long>.<fmt>

    Grouse-Mountain_49.470628_49.336694_-123.132056_-122.9811.jpg

Sub-commands:

    kmz     Cut the map into tiles a Garmin GPS can handle (tested on 62s &
            64s).  Garmin limits the number of tiles per model (100 on 62s,
            500 on Montana, Oregon 600 and GPSMAP 64 series) and tiles over
            1 megapixel add no clarity, so a large image is reduced in
            quality until it can be chopped into max-tiles or fewer
            1024x1024 chunks.  Copy the KMZ into /Garmin/CustomMap.

    bigkmz  Keep the map in a single image for Google Earth and other
            viewers that handle large images.  E.g. in the Search and
            Rescue context, team members carry the kmz on their GPSs while
            the SAR manager views the bigkmz at the command post.

Usage:
    python cutkmz.py kmz mymap_49.470608_49.336874_-122.980874_-123.131480.jpg
    python cutkmz.py kmz --max-tiles 500 --drawing-order 60 map1.jpg map2.jpg
    python cutkmz.py bigkmz --max-pixels 50000000 mymap_...jpg
    python cutkmz.py kmz --engine imagemagick --keep-tmp --verbose mymap_...jpg
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from image_engine import ImageEngine, get_engine
from kmz_builder import make_single_kmz, make_tiled_kmz, process_images
from kmz_config import (
    DEFAULT_DRAWING_ORDER,
    DEFAULT_MAX_PIXELS,
    DEFAULT_MAX_TILES,
    KmzOptions,
)

logger = logging.getLogger(__name__)

BUILDERS = {
    "kmz": make_tiled_kmz,
    "bigkmz": make_single_kmz,
}


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "images", nargs="*", metavar="IMAGE",
        help="Image file named with its bounding box in decimal degrees.",
    )
    p.add_argument(
        "--drawing-order", "-d", type=int, default=DEFAULT_DRAWING_ORDER,
        help=(
            f"KML drawOrder of the overlays (default: {DEFAULT_DRAWING_ORDER}).  "
            "Garmins make values > 50 visible.  Tune if you have overlapping overlays."
        ),
    )
    p.add_argument(
        "--keep-tmp", "-k", action="store_true",
        help="Don't delete intermediate files from $TMPDIR.",
    )
    p.add_argument(
        "--output-dir", "-o", type=Path, default=Path.cwd(),
        help="Directory the .kmz files are written to (default: current directory).",
    )
    p.add_argument(
        "--engine", choices=["pillow", "imagemagick"], default="pillow",
        help="Image engine used to convert and cut the map (default: pillow).",
    )
    p.add_argument(
        "--magick",
        help="Explicit path to ImageMagick's 'magick'.  Auto-detected if omitted.",
    )
    p.add_argument(
        "--renormalize", action="store_true",
        help=(
            "Wrap computed tile east edges into [-180, 180].  By default an "
            "overlay east of the antimeridian keeps an east edge above 180."
        ),
    )
    p.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable DEBUG-level logging.",
    )


def build_parser() -> argparse.ArgumentParser:
    """Command-line parser with the kmz and bigkmz sub-commands."""
    parser = argparse.ArgumentParser(
        prog="cutkmz",
        description="Convert name-geo-anchored JPG map images into overlay KMZs.",
        epilog=(
            "Image names must look like <map-name>_<N>_<S>_<E>_<W>.jpg, e.g.\n"
            "  Grouse-Mountain_49.470628_49.336694_-123.132056_-122.9811.jpg"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    kmz = sub.add_parser(
        "kmz",
        help="Create a .kmz with map tiles small enough for a Garmin GPS.",
        description=(
            "Crunches and converts a raster image to match what Garmin devices "
            "can handle wrt resolution and max tile size.  Requires Pillow, or "
            "ImageMagick with --engine imagemagick."
        ),
    )
    _add_common_args(kmz)
    kmz.add_argument(
        "--max-tiles", "-t", type=int, default=DEFAULT_MAX_TILES,
        help=f"Max number of pieces to cut the image into (default: {DEFAULT_MAX_TILES}).  Beware of device limits.",
    )

    big = sub.add_parser(
        "bigkmz",
        help="Create a .kmz holding the whole image as one tile, for Google Earth etc, not Garmins.",
        description=(
            "Unlike kmz, the image is not sliced into tiles to meet device "
            "limitations.  The result is meant for Google Earth and other "
            "apps that can handle large images."
        ),
    )
    _add_common_args(big)
    big.add_argument(
        "--max-pixels", "-m", type=int, default=DEFAULT_MAX_PIXELS,
        help="Max pixel area, w x h.  0 means no limit, use the image as is (default: 0).",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def _fail(command: str, message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    print(f"see 'cutkmz {command} -h' for help", file=sys.stderr)
    return 1


def run(args: argparse.Namespace, engine: Optional[ImageEngine] = None) -> int:
    """Process every image named in *args*; return the exit status."""
    if not args.images:
        return _fail(args.command, "Image file required: must provide one or more image file paths")

    try:
        options = KmzOptions(
            max_tiles=getattr(args, "max_tiles", DEFAULT_MAX_TILES),
            max_pixels=getattr(args, "max_pixels", DEFAULT_MAX_PIXELS),
            drawing_order=args.drawing_order,
            keep_tmp=args.keep_tmp,
            output_dir=args.output_dir,
            renormalize=args.renormalize,
        )
        if engine is None:
            engine = get_engine(args.engine, args.magick)
    except (ValueError, FileNotFoundError) as exc:
        return _fail(args.command, str(exc))

    logger.info(
        "%s: engine=%s max_tiles=%d max_pixels=%d drawing_order=%d keep_tmp=%s",
        args.command, engine.name, options.max_tiles, options.max_pixels,
        options.drawing_order, options.keep_tmp,
    )

    failed = process_images(args.images, BUILDERS[args.command], options, engine)
    if failed:
        names = ", ".join(str(f) for f in failed)
        return _fail(args.command, f"{len(failed)} of {len(args.images)} image(s) failed: {names}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
