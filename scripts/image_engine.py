"""image_engine.py — Raster operations needed to turn a map image into tiles.

Two interchangeable engines:

    PillowEngine       in-process, needs only Pillow (default)
    ImageMagickEngine  shells out to ImageMagick's convert/identify, as the
                       tool originally did; pass --engine imagemagick

Both produce baseline (non-progressive) JPEGs with metadata stripped, which
is what Garmin devices require, and both cut tiles row-major from the
top-left so that ascending tile file names are in raster order.
"""

import logging
import math
import re
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple, Union

from PIL import Image

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Large scanned maps are expected; disable Pillow's decompression-bomb guard.
Image.MAX_IMAGE_PIXELS = None

JPEG_QUALITY: int = 90
COMMAND_TIMEOUT: int = 600  # seconds per ImageMagick call

_TILE_INDEX_RE = re.compile(r"_tile_(\d+)\.jpg$")


class ExternalToolError(RuntimeError):
    """The image engine failed or produced output of an unexpected shape."""


def tile_name(base: str, index: int, count: int) -> str:
    """File name for tile *index* of *count*, zero padded so names sort in order."""
    digits = max(3, len(str(count - 1)))
    return f"{base}_tile_{index:0{digits}d}.jpg"


def area_fit(width: int, height: int, max_area: int) -> Tuple[int, int]:
    """
    Scale (width, height) down, keeping the aspect ratio, so that
    width * height <= max_area.  Sizes already within the area are returned
    unchanged.
    """
    if width * height <= max_area:
        return width, height
    factor = math.sqrt(max_area / (width * height))
    return max(1, int(width * factor)), max(1, int(height * factor))


class ImageEngine:
    """Operations the KMZ builders need from an image engine."""

    name = "abstract"

    def dimensions(self, path: PathLike) -> Tuple[int, int]:
        """Return (width, height) in pixels."""
        raise NotImplementedError

    def normalize(self, src: PathLike, dest: PathLike) -> Path:
        """Write a non-interlaced, metadata-stripped JPEG copy of *src*."""
        raise NotImplementedError

    def resize_by_area(self, src: PathLike, dest: PathLike, max_area: int) -> Path:
        """Like normalize() but shrunk to at most *max_area* pixels."""
        raise NotImplementedError

    def crop_grid(self, src: PathLike, out_dir: PathLike, tile_size: int, base: str) -> List[Path]:
        """
        Cut *src* into tile_size x tile_size JPEG tiles in *out_dir*.

        Returns the tile paths in raster order; right-most and bottom tiles
        may be smaller.
        """
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Pillow
# ---------------------------------------------------------------------------


class PillowEngine(ImageEngine):
    """Image engine backed by Pillow."""

    name = "pillow"

    def __init__(self, quality: int = JPEG_QUALITY):
        self.quality = quality

    def _open(self, path: PathLike) -> Image.Image:
        try:
            img = Image.open(path)
            img.load()
        except OSError as exc:
            raise ExternalToolError(f"Cannot read image {path}: {exc}") from exc
        return img

    def _save(self, img: Image.Image, dest: PathLike) -> Path:
        # exif and icc_profile are only written when passed explicitly
        if img.mode != "RGB":
            img = img.convert("RGB")
        try:
            img.save(dest, "JPEG", quality=self.quality, progressive=False)
        except OSError as exc:
            raise ExternalToolError(f"Cannot write image {dest}: {exc}") from exc
        return Path(dest)

    def dimensions(self, path: PathLike) -> Tuple[int, int]:
        try:
            with Image.open(path) as img:
                return img.size
        except OSError as exc:
            raise ExternalToolError(f"Cannot read image {path}: {exc}") from exc

    def normalize(self, src: PathLike, dest: PathLike) -> Path:
        with self._open(src) as img:
            logger.debug("Normalizing %s -> %s", src, dest)
            return self._save(img, dest)

    def resize_by_area(self, src: PathLike, dest: PathLike, max_area: int) -> Path:
        with self._open(src) as img:
            size = area_fit(img.width, img.height, max_area)
            logger.debug(
                "Resizing %s from %dx%d to %dx%d (max area %d) -> %s",
                src, img.width, img.height, size[0], size[1], max_area, dest,
            )
            if size != img.size:
                img = img.resize(size, Image.LANCZOS)
            return self._save(img, dest)

    def crop_grid(self, src: PathLike, out_dir: PathLike, tile_size: int, base: str) -> List[Path]:
        out_dir = Path(out_dir)
        paths: List[Path] = []
        with self._open(src) as img:
            n_cols = math.ceil(img.width / tile_size)
            n_rows = math.ceil(img.height / tile_size)
            count = n_cols * n_rows
            logger.debug(
                "Cropping %s (%dx%d) into %dx%d tiles of %dpx",
                src, img.width, img.height, n_cols, n_rows, tile_size,
            )
            for row_idx in range(n_rows):
                top = row_idx * tile_size
                bottom = min(top + tile_size, img.height)
                for col_idx in range(n_cols):
                    left = col_idx * tile_size
                    right = min(left + tile_size, img.width)
                    tile = img.crop((left, top, right, bottom))
                    dest = out_dir / tile_name(base, len(paths), count)
                    paths.append(self._save(tile, dest))
        return paths


# ---------------------------------------------------------------------------
# ImageMagick
# ---------------------------------------------------------------------------


def find_imagemagick(override: Optional[str] = None) -> Tuple[List[str], List[str]]:
    """
    Locate ImageMagick and return (convert_cmd, identify_cmd) prefixes.

    Checks in order:
        1. --magick command-line override (path to the IM7 'magick' binary)
        2. 'magick' on the system PATH (ImageMagick 7)
        3. 'convert' and 'identify' on the system PATH (ImageMagick 6)
    """
    if override:
        p = Path(override)
        if p.exists():
            return [str(p)], [str(p), "identify"]
        raise FileNotFoundError(f"ImageMagick not found at override path: {override}")

    magick = shutil.which("magick")
    if magick:
        return [magick], [magick, "identify"]

    convert = shutil.which("convert")
    identify = shutil.which("identify")
    if convert and identify:
        return [convert], [identify]

    raise FileNotFoundError(
        "ImageMagick not found.  Install ImageMagick or pass --magick <path>."
    )


class ImageMagickEngine(ImageEngine):
    """Image engine that runs ImageMagick's convert and identify programs."""

    name = "imagemagick"

    def __init__(
        self,
        convert_cmd:  Optional[List[str]] = None,
        identify_cmd: Optional[List[str]] = None,
        timeout:      int = COMMAND_TIMEOUT,
    ):
        if convert_cmd is None or identify_cmd is None:
            convert_cmd, identify_cmd = find_imagemagick()
        self.convert_cmd = list(convert_cmd)
        self.identify_cmd = list(identify_cmd)
        self.timeout = timeout

    def _run(self, cmd: List[str]) -> str:
        logger.debug("About to run: %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ExternalToolError(f"Could not run {cmd[0]}: {exc}") from exc
        if result.returncode != 0:
            raise ExternalToolError(
                f"{' '.join(cmd)} exited with code {result.returncode}: "
                f"{result.stderr[:1000].strip()}"
            )
        return result.stdout

    def _expect(self, dest: PathLike) -> Path:
        dest = Path(dest)
        if not dest.exists():
            raise ExternalToolError(f"ImageMagick succeeded but output not found: {dest}")
        return dest

    def dimensions(self, path: PathLike) -> Tuple[int, int]:
        if not Path(path).exists():
            raise FileNotFoundError(f"Image not found: {path}")
        out = self._run(self.identify_cmd + ["-format", "%w %h", str(path)])
        wh = out.strip().split(" ")
        if len(wh) != 2:
            raise ExternalToolError(f"Expected two ints separated by space, but got: {out!r}")
        try:
            return int(wh[0]), int(wh[1])
        except ValueError as exc:
            raise ExternalToolError(f"Unexpected identify output {out!r}: {exc}") from exc

    def normalize(self, src: PathLike, dest: PathLike) -> Path:
        self._run(self.convert_cmd + [str(src), "-strip", "-interlace", "none", str(dest)])
        return self._expect(dest)

    def resize_by_area(self, src: PathLike, dest: PathLike, max_area: int) -> Path:
        # argument order matters to convert
        self._run(self.convert_cmd + [
            "-resize", f"@{max_area}", str(src),
            "-strip", "-interlace", "none", str(dest),
        ])
        return self._expect(dest)

    def crop_grid(self, src: PathLike, out_dir: PathLike, tile_size: int, base: str) -> List[Path]:
        out_dir = Path(out_dir)
        pattern = out_dir / f"{base}_tile_%03d.jpg"
        self._run(self.convert_cmd + [
            "-crop", f"{tile_size}x{tile_size}", str(src), "+adjoin", str(pattern),
        ])
        indexed = []
        for p in out_dir.glob(f"{base}_tile_*.jpg"):
            m = _TILE_INDEX_RE.search(p.name)
            if m:
                indexed.append((int(m.group(1)), p))
        if not indexed:
            raise ExternalToolError(f"ImageMagick produced no tiles in {out_dir}")
        return [p for _, p in sorted(indexed)]


def get_engine(name: str = "pillow", magick: Optional[str] = None) -> ImageEngine:
    """Engine factory used by the CLI."""
    if name == PillowEngine.name:
        return PillowEngine()
    if name == ImageMagickEngine.name:
        convert_cmd, identify_cmd = find_imagemagick(magick)
        return ImageMagickEngine(convert_cmd, identify_cmd)
    raise ValueError(f"Unknown image engine: {name}")
