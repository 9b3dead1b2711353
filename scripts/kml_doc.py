"""kml_doc.py — The doc.kml overlay descriptor placed at the root of a KMZ.

Layout (one GroundOverlay per tile):

    <kml xmlns="http://www.opengis.net/kml/2.2">
      <Document>
        <name>Grouse-Mountain</name>
        <GroundOverlay>
          <name>Grouse-Mountain_tile_000.jpg</name>
          <color>bdffffff</color>
          <drawOrder>51</drawOrder>
          <Icon>
            <href>tiles/Grouse-Mountain_tile_000.jpg</href>
            <viewBoundScale>1.0</viewBoundScale>
          </Icon>
          <LatLonBox>
            <north>..</north> <south>..</south> <east>..</east> <west>..</west>
            <rotation>0.0</rotation>
          </LatLonBox>
        </GroundOverlay>
      </Document>
    </kml>
"""

import logging
from pathlib import Path, PurePath
from typing import Union

import xml.etree.ElementTree as ET

from geobox import GeoBox
from kmz_config import (
    DEFAULT_DRAWING_ORDER,
    KML_NAMESPACE,
    OVERLAY_COLOR,
    ROTATION,
    VIEW_BOUND_SCALE,
)

logger = logging.getLogger(__name__)

ET.register_namespace("", KML_NAMESPACE)


def _tag(name: str) -> str:
    return f"{{{KML_NAMESPACE}}}{name}"


def _sub(parent: ET.Element, name: str, text: str = None) -> ET.Element:
    elem = ET.SubElement(parent, _tag(name))
    if text is not None:
        elem.text = text
    return elem


def format_degrees(value: float) -> str:
    """Shortest decimal text that round-trips the float."""
    return repr(float(value))


class KmlDocument:
    """Accumulates ground overlays for one map and writes them as KML."""

    def __init__(self, name: str):
        self.name = name
        self.root = ET.Element(_tag("kml"))
        self.document = _sub(self.root, "Document")
        _sub(self.document, "name", name)
        self.overlay_count = 0

    def add_overlay(
        self,
        name:          str,
        box:           GeoBox,
        href:          Union[str, PurePath],
        drawing_order: int = DEFAULT_DRAWING_ORDER,
    ) -> ET.Element:
        """
        Append a GroundOverlay for one image.

        *href* is the image path relative to the KMZ root; it is always
        written with forward slashes.
        """
        overlay = _sub(self.document, "GroundOverlay")
        _sub(overlay, "name", name)
        _sub(overlay, "color", OVERLAY_COLOR)
        _sub(overlay, "drawOrder", str(drawing_order))

        icon = _sub(overlay, "Icon")
        _sub(icon, "href", PurePath(href).as_posix())
        _sub(icon, "viewBoundScale", VIEW_BOUND_SCALE)

        llbox = _sub(overlay, "LatLonBox")
        _sub(llbox, "north", format_degrees(box.north))
        _sub(llbox, "south", format_degrees(box.south))
        _sub(llbox, "east", format_degrees(box.east))
        _sub(llbox, "west", format_degrees(box.west))
        _sub(llbox, "rotation", ROTATION)

        self.overlay_count += 1
        return overlay

    def to_string(self) -> str:
        tree = ET.ElementTree(self.root)
        ET.indent(tree, space="  ")
        body = ET.tostring(self.root, encoding="unicode")
        return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n"

    def write(self, path: Union[str, Path]) -> Path:
        """Write the document as UTF-8 to *path*."""
        path = Path(path)
        path.write_text(self.to_string(), encoding="utf-8")
        logger.debug("Wrote %s with %d overlay(s)", path, self.overlay_count)
        return path
