"""kmz_builder.py — Turn name-geo-anchored map images into overlay KMZs.

Two builders share the same staging layout in a temporary directory:

    <tmp>/fixed.jpg                    normalized / resized source (tiled mode)
    <tmp>/<name>/doc.kml               overlay descriptor
    <tmp>/<name>/tiles/<name>_tile_NNN.jpg

<tmp>/<name> is zipped so that doc.kml sits at the root of the KMZ.

make_tiled_kmz   slices the map into 1024 px tiles, reducing its quality
                 until it fits in max_tiles tiles (Garmin devices).
                 Output: <name>.kmz
make_single_kmz  keeps the map in one image, optionally reduced to
                 max_pixels (Google Earth etc).  Output: <name>-big.kmz
"""

import logging
import os
import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Union

from geobox import FormatError, parse_geo_filename
from image_engine import ExternalToolError, ImageEngine, PillowEngine
from kml_doc import KmlDocument
from kmz_config import DOC_NAME, FIXED_NAME, TILES_DIR, TMP_PREFIX, KmzOptions
from tile_geometry import MapTile, layout_tiles

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ImageProcessingError(Exception):
    """A single input image could not be turned into a KMZ."""

    def __init__(self, image: PathLike, stage: str, cause: Exception):
        self.image = Path(image)
        self.stage = stage
        self.cause = cause
        super().__init__(f"{self.image}: {stage} failed: {cause}")


# ---------------------------------------------------------------------------
# Staging helpers
# ---------------------------------------------------------------------------


@contextmanager
def working_dir(keep: bool = False) -> Iterator[Path]:
    """
    Yield a fresh temporary directory, removed on exit unless *keep*.
    """
    tmp_dir = Path(tempfile.mkdtemp(prefix=TMP_PREFIX))
    logger.debug("Working directory: %s", tmp_dir)
    try:
        yield tmp_dir
    finally:
        if keep:
            logger.info("Keeping intermediate files in %s", tmp_dir)
        else:
            shutil.rmtree(tmp_dir)
            logger.debug("Working directory removed.")


def zip_directory(src_dir: PathLike, dest: PathLike) -> Path:
    """
    Zip every file under *src_dir* into *dest*, with archive paths relative
    to *src_dir*.

    The archive is written beside *dest* first and renamed into place, so
    a failed write never leaves a partial KMZ behind.
    """
    src_dir = Path(src_dir)
    dest = Path(dest)
    part = dest.with_name(dest.name + ".part")
    try:
        with zipfile.ZipFile(part, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in sorted(src_dir.rglob("*")):
                if path.is_dir():
                    continue
                zf.write(path, path.relative_to(src_dir).as_posix())
        os.replace(part, dest)
    except BaseException:
        if part.exists():
            part.unlink()
        raise
    logger.debug("Zipped %s -> %s", src_dir, dest)
    return dest


def _stage_dirs(tmp_dir: Path, name: str):
    map_root = tmp_dir / name
    tiles_dir = map_root / TILES_DIR
    tiles_dir.mkdir(parents=True, exist_ok=True)
    return map_root, tiles_dir


@contextmanager
def _step(image: PathLike, name: str) -> Iterator[None]:
    """Re-raise domain and I/O failures as ImageProcessingError for *image*."""
    try:
        yield
    except (FormatError, ExternalToolError, OSError) as exc:
        raise ImageProcessingError(image, name, exc) from exc


def _source_map(image: Path, engine: ImageEngine):
    with _step(image, "checking image file"):
        if not image.is_file():
            raise FileNotFoundError(f"Image file not found: {image}")
    with _step(image, "reading bounding box from file name"):
        # only the file name carries the box; directories may contain '_'
        name, box = parse_geo_filename(image.name)
    with _step(image, "reading image dimensions"):
        orig = MapTile.from_file(image, box, engine)
    logger.info(
        "%s: %dx%d px, N=%s S=%s E=%s W=%s",
        name, orig.width, orig.height, box.north, box.south, box.east, box.west,
    )
    return name, box, orig


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_tiled_kmz(
    image:   PathLike,
    options: KmzOptions,
    engine:  Optional[ImageEngine] = None,
) -> Path:
    """
    Build <name>.kmz with the map cut into tiles small enough for a Garmin.

    Returns the path of the KMZ written into options.output_dir.
    """
    engine = engine or PillowEngine()
    image = Path(image).resolve()

    name, box, orig = _source_map(image, engine)

    with _step(image, "staging working files"), working_dir(options.keep_tmp) as tmp_dir:
        map_root, tiles_dir = _stage_dirs(tmp_dir, name)
        fixed_jpg = tmp_dir / FIXED_NAME

        max_pixels = options.max_tiled_pixels
        with _step(image, "converting image"):
            if max_pixels < orig.width * orig.height:
                logger.info("Reducing %s to at most %d pixels", name, max_pixels)
                engine.resize_by_area(image, fixed_jpg, max_pixels)
            else:
                engine.normalize(image, fixed_jpg)

        # The pixel width of the map the tiles are cut from tells which
        # row each tile falls in.
        with _step(image, "reading converted image dimensions"):
            fixed_map = MapTile.from_file(fixed_jpg, box, engine)

        with _step(image, "cutting tiles"):
            tile_paths = engine.crop_grid(fixed_jpg, tiles_dir, options.tile_size, name)
            tiles = [(p, *engine.dimensions(p)) for p in tile_paths]
        logger.info("%s: %d tile(s) from %dx%d px", name, len(tiles), fixed_map.width, fixed_map.height)

        boxed = layout_tiles(fixed_map, tiles, options.renormalize)

        doc = KmlDocument(name)
        for tile in boxed:
            tile_path = Path(tile.path)
            doc.add_overlay(
                tile_path.name, tile.box, tile_path.relative_to(map_root), options.drawing_order,
            )

        with _step(image, "writing KMZ"):
            doc.write(map_root / DOC_NAME)
            options.output_dir.mkdir(parents=True, exist_ok=True)
            kmz = zip_directory(map_root, options.output_dir / f"{name}.kmz")

    logger.info("Wrote %s", kmz)
    return kmz


def make_single_kmz(
    image:   PathLike,
    options: KmzOptions,
    engine:  Optional[ImageEngine] = None,
) -> Path:
    """
    Build <name>-big.kmz holding the whole map as a single image.

    With options.max_pixels > 0 a larger image is reduced to that pixel
    area; otherwise the file is copied untouched.
    """
    engine = engine or PillowEngine()
    image = Path(image).resolve()

    name, box, orig = _source_map(image, engine)

    with _step(image, "staging working files"), working_dir(options.keep_tmp) as tmp_dir:
        map_root, tiles_dir = _stage_dirs(tmp_dir, name)
        fixed_jpg = tiles_dir / f"{name}_tile_000.jpg"

        max_pixels = options.max_pixels
        with _step(image, "converting image"):
            if 0 < max_pixels < orig.width * orig.height:
                logger.info("Reducing %s to at most %d pixels", name, max_pixels)
                engine.resize_by_area(image, fixed_jpg, max_pixels)
            else:
                # no de-interlace or stripping
                shutil.copyfile(image, fixed_jpg)

        with _step(image, "reading converted image dimensions"):
            fixed_map = MapTile.from_file(fixed_jpg, box, engine)

        doc = KmlDocument(name)
        doc.add_overlay(
            name, fixed_map.box, fixed_jpg.relative_to(map_root), options.drawing_order,
        )

        with _step(image, "writing KMZ"):
            doc.write(map_root / DOC_NAME)
            options.output_dir.mkdir(parents=True, exist_ok=True)
            kmz = zip_directory(map_root, options.output_dir / f"{name}-big.kmz")

    logger.info("Wrote %s", kmz)
    return kmz


Builder = Callable[[PathLike, KmzOptions, Optional[ImageEngine]], Path]


def process_images(
    images:  Sequence[PathLike],
    build:   Builder,
    options: KmzOptions,
    engine:  Optional[ImageEngine] = None,
) -> List[Path]:
    """
    Run *build* for every image.  A failed image is logged and skipped.

    Returns the images that failed.
    """
    failed: List[Path] = []
    for i, image in enumerate(images, 1):
        logger.info("─── [%d/%d] %s ───", i, len(images), image)
        try:
            build(image, options, engine)
        except ImageProcessingError as exc:
            logger.error("%s", exc)
            failed.append(Path(image))
    return failed
