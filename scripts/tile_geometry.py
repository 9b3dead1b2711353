"""tile_geometry.py — Geographic bounding boxes for tiles cut from a map image.

A map image is sliced row-major into tiles: top-left (north-west) first,
eastwards along a row, then down to the bottom-right (south-east).  Only
the full map's box is known; each tile's box is interpolated linearly
(equirectangular) from its pixel size relative to the full map.

Raster rows grow downward (south) while pixel columns grow eastward, so a
tile is anchored by its north-west corner and its south-east corner is
computed from that anchor:

    south = north - (tile_h / map_h) * (map.north - map.south)
    east  = west  + (tile_w / map_w) * east_west_span(map.east, map.west)

Right-most tiles may be narrower and bottom tiles shorter than the rest,
so every tile is measured individually.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple, Union

from geobox import GeoBox, east_west_span, normalize_longitude

logger = logging.getLogger(__name__)


@dataclass
class MapTile:
    """An image file, its pixel width & height and its lat/long box."""
    path: Union[str, Path]
    width: int
    height: int
    box: GeoBox

    @classmethod
    def from_file(cls, path: Union[str, Path], box: GeoBox, engine) -> "MapTile":
        """Build a MapTile, reading the pixel size through *engine*."""
        width, height = engine.dimensions(path)
        return cls(path, width, height, box)


def delta(
    tile_width:  int,
    tile_height: int,
    box:         GeoBox,
    tot_width:   int,
    tot_height:  int,
) -> Tuple[float, float]:
    """
    Return (ns_delta_deg, ew_delta_deg): how many degrees further south the
    bottom of the tile is than its top, and how many degrees further east
    its east edge is than its west edge.

    Parameters
    ----------
    tile_width, tile_height : tile size in pixels
    box                     : bounding box of the full map
    tot_width, tot_height   : full map size in pixels
    """
    ns_delta_deg = (tile_height / tot_height) * (box.north - box.south)
    ew_delta_deg = (tile_width / tot_width) * east_west_span(box.east, box.west)
    return ns_delta_deg, ew_delta_deg


@dataclass(frozen=True)
class TileAnchor:
    """North-west corner of a tile, known from its place in the grid."""
    north: float
    west: float

    def complete(
        self,
        tile_width:  int,
        tile_height: int,
        full_map:    MapTile,
        renormalize: bool = False,
    ) -> GeoBox:
        """
        Return the tile's full box by computing its south and east edges.

        The east edge is left as computed (it may run past 180 for tiles
        right of the antimeridian) unless *renormalize* is set.
        """
        ns_delta_deg, ew_delta_deg = delta(
            tile_width, tile_height, full_map.box, full_map.width, full_map.height,
        )
        # float drift on the bottom row must not cross the south pole
        south = max(self.north - ns_delta_deg, -90.0)
        east = self.west + ew_delta_deg
        if renormalize:
            east = normalize_longitude(east)
        return GeoBox(self.north, south, east, self.west, wrap=False)


def layout_tiles(
    full_map:    MapTile,
    tiles:       Iterable[Tuple[Union[str, Path], int, int]],
    renormalize: bool = False,
) -> List[MapTile]:
    """
    Walk (path, width, height) tiles in raster order and box each one.

    Each tile is anchored where its predecessor ended.  Once the summed
    widths reach the full map width the row is done: the next tile starts
    at the map's west edge, at the south edge of the tile just boxed.
    """
    boxed: List[MapTile] = []
    curr_north = full_map.box.north
    curr_west = full_map.box.west
    width_sum = 0

    for path, width, height in tiles:
        box = TileAnchor(curr_north, curr_west).complete(
            width, height, full_map, renormalize,
        )
        tile = MapTile(path, width, height, box)
        boxed.append(tile)
        logger.debug(
            "Tile %s %dx%d: N=%.6f S=%.6f E=%.6f W=%.6f",
            path, width, height, box.north, box.south, box.east, box.west,
        )

        width_sum += width
        if width_sum >= full_map.width:
            # drop down a row
            curr_north = box.south
            curr_west = full_map.box.west
            width_sum = 0
        else:
            curr_west = box.east

    return boxed
