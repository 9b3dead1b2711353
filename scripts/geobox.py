"""geobox.py — Geographic bounding boxes for name-geo-anchored map images.

A map image carries its own bounding box in its file name:

    <map-name>_<North-lat>_<South-lat>_<East-long>_<West-long>.<fmt>

    e.g. Grouse-Mountain_49.470628_49.336694_-123.132056_-122.9811.jpg

All values are decimal degrees.  Longitudes are kept in [-180, 180]; a box
whose east edge is numerically less than its west edge wraps through the
antimeridian.
"""

import math
import os
from dataclasses import InitVar, dataclass
from typing import Tuple

FILENAME_HELP = (
    "File name must include bounding box name_N_S_E_W.jpg in decimal degrees, "
    "e.g. Grouse-Mountain_49.470628_49.336694_-123.132056_-122.9811.jpg"
)


class FormatError(ValueError):
    """Malformed map file name or an impossible bounding box."""


# ---------------------------------------------------------------------------
# Longitude helpers
# ---------------------------------------------------------------------------


def normalize_longitude(deg: float) -> float:
    """Return *deg* reduced to [-180, 180], congruent mod 360."""
    # math.fmod keeps the sign of the first operand
    if deg < -180:
        return math.fmod(deg + 180, 360) + 180
    if deg > 180:
        return math.fmod(deg - 180, 360) - 180
    return deg


def east_west_span(east: float, west: float) -> float:
    """
    Degrees of longitude covered travelling east from *west* to *east*.

    Handles boxes straddling the antimeridian, e.g. (-170, 170) -> 20.
    """
    east = normalize_longitude(east)
    west = normalize_longitude(west)
    if east < west:
        return 360 + east - west
    return east - west


# ---------------------------------------------------------------------------
# GeoBox
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GeoBox:
    """
    Immutable north/south/east/west box in decimal degrees.

    East and west are normalized into [-180, 180] unless ``wrap=False``;
    completed tile boxes use that to keep an east edge that runs past 180.
    """
    north: float
    south: float
    east: float
    west: float
    wrap: InitVar[bool] = True

    def __post_init__(self, wrap: bool):
        for field_name in ("north", "south", "east", "west"):
            value = getattr(self, field_name)
            if not math.isfinite(value):
                raise FormatError(f"{field_name} must be a finite number, got {value!r}")
        if self.north <= self.south or self.north > 90 or self.south < -90:
            raise FormatError(
                "North boundary must be greater than south boundary and in [-90,90] "
                f"(north={self.north}, south={self.south})"
            )
        if wrap:
            object.__setattr__(self, "east", normalize_longitude(self.east))
            object.__setattr__(self, "west", normalize_longitude(self.west))

    @property
    def span_ns(self) -> float:
        return self.north - self.south

    @property
    def span_ew(self) -> float:
        return east_west_span(self.east, self.west)

    @property
    def crosses_antimeridian(self) -> bool:
        return normalize_longitude(self.east) < normalize_longitude(self.west)

    def normalized(self) -> "GeoBox":
        """Copy with east/west wrapped into [-180, 180]."""
        return GeoBox(self.north, self.south, self.east, self.west)


# ---------------------------------------------------------------------------
# File-name parsing
# ---------------------------------------------------------------------------


def parse_geo_filename(filename: str) -> Tuple[str, GeoBox]:
    """
    Extract the map name and bounding box from a name-geo-anchored file name.

    The last coordinate keeps at most one decimal point; anything after a
    second '.' is taken to be the file extension (``-122.9811.jpg``).

    Raises FormatError if the name does not have exactly five '_' separated
    parts, a coordinate is not a number, or the box is invalid.
    """
    parts = filename.split("_")
    if len(parts) != 5:
        raise FormatError(FILENAME_HELP)

    name = os.path.basename(parts[0])
    coords = parts[1:]

    last = coords[3].split(".", 2)
    if len(last) == 3:
        coords[3] = f"{last[0]}.{last[1]}"

    try:
        north, south, east, west = (float(c) for c in coords)
    except ValueError as exc:
        raise FormatError(f"Error parsing lat/long degrees in file name: {exc}") from exc

    return name, GeoBox(north, south, east, west)
