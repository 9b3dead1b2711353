"""
Configuration for KMZ overlay generation.
Defaults for both the tiled (Garmin) and single-image (Google Earth) modes.
"""

from dataclasses import dataclass, field
from pathlib import Path

# ---------------------------------------------------------------------------
# Device limits
# ---------------------------------------------------------------------------
# Garmin units limit the number of tiles per device (100 on a 62s, 500 on
# Montana, Oregon 600 and GPSMAP 64 series).  Tiles over 1 megapixel add
# no clarity on the device.

DEFAULT_MAX_TILES: int = 100
TILE_SIZE: int = 1024           # pixels per tile edge (square)

# 0 means no limit: the single-image mode uses the image as is.
DEFAULT_MAX_PIXELS: int = 0

# ---------------------------------------------------------------------------
# KML overlay appearance
# ---------------------------------------------------------------------------

# Garmins only show overlays with drawOrder > 50.
DEFAULT_DRAWING_ORDER: int = 51
OVERLAY_COLOR: str = "bdffffff"  # aabbggrr, slightly translucent
VIEW_BOUND_SCALE: str = "1.0"
ROTATION: str = "0.0"
KML_NAMESPACE: str = "http://www.opengis.net/kml/2.2"

# ---------------------------------------------------------------------------
# Working files
# ---------------------------------------------------------------------------

TMP_PREFIX: str = "cutkmz-"
DOC_NAME: str = "doc.kml"        # Garmins only read /doc.kml in a .kmz
TILES_DIR: str = "tiles"
FIXED_NAME: str = "fixed.jpg"


@dataclass
class KmzOptions:
    """Resolved settings handed from the CLI to the KMZ builders."""
    max_tiles: int = DEFAULT_MAX_TILES
    max_pixels: int = DEFAULT_MAX_PIXELS
    drawing_order: int = DEFAULT_DRAWING_ORDER
    keep_tmp: bool = False
    output_dir: Path = field(default_factory=Path.cwd)
    tile_size: int = TILE_SIZE
    renormalize: bool = False

    def __post_init__(self):
        if self.max_tiles < 1:
            raise ValueError(f"max_tiles must be at least 1, got {self.max_tiles}")
        if self.tile_size < 1:
            raise ValueError(f"tile_size must be at least 1, got {self.tile_size}")
        if self.max_pixels < 0:
            raise ValueError(f"max_pixels must not be negative, got {self.max_pixels}")
        self.output_dir = Path(self.output_dir)

    @property
    def max_tiled_pixels(self) -> int:
        """Largest pixel area that still cuts into max_tiles tiles."""
        return self.max_tiles * self.tile_size * self.tile_size
