"""
Test suite for geobox.py
Longitude normalization, east-west spans, box validation and file-name parsing.
"""

import math
import unittest

from geobox import (
    FormatError, GeoBox, east_west_span, normalize_longitude, parse_geo_filename,
)


class TestNormalizeLongitude(unittest.TestCase):
    """Test reduction of longitudes into [-180, 180]."""

    def test_known_values(self):
        """Test the boundary and wrap-around values exactly."""
        vals = [
            (10, 10),
            (-100, -100),
            (-170, -170),
            (180, 180),
            (0, 0),
            (-185, 175),
            (-180, -180),
            (-360, 0),
            (360, 0),
            (420, 60),
            (-420, -60),
        ]
        for deg, norm in vals:
            with self.subTest(deg=deg):
                self.assertEqual(normalize_longitude(deg), norm)

    def test_range_congruence_and_idempotence(self):
        """Test every result is in range, congruent mod 360 and stable."""
        deg = -1090.25
        while deg <= 1090.25:
            norm = normalize_longitude(deg)
            self.assertGreaterEqual(norm, -180)
            self.assertLessEqual(norm, 180)
            turns = (norm - deg) / 360
            self.assertAlmostEqual(turns, round(turns), places=9)
            self.assertEqual(normalize_longitude(norm), norm)
            deg += 17.75


class TestEastWestSpan(unittest.TestCase):
    """Test the eastward span between two longitudes."""

    def test_known_spans(self):
        vals = [
            (10, 0, 10),
            (-100, -120, 20),
            (10, -10, 20),
            (-170, 170, 20),
            (170, 178, 352),
        ]
        for east, west, span in vals:
            with self.subTest(east=east, west=west):
                self.assertEqual(east_west_span(east, west), span)

    def test_unnormalized_inputs(self):
        """Test longitudes outside [-180, 180] are normalized first."""
        self.assertEqual(east_west_span(190, 170), 20)
        self.assertEqual(east_west_span(370, -350), 0)


class TestGeoBox(unittest.TestCase):
    """Test GeoBox construction and validation."""

    def test_valid_box(self):
        box = GeoBox(49.470628, 49.336694, -123.132056, -122.9811)
        self.assertEqual(box.north, 49.470628)
        self.assertEqual(box.south, 49.336694)
        self.assertEqual(box.east, -123.132056)
        self.assertEqual(box.west, -122.9811)

    def test_north_below_south_rejected(self):
        with self.assertRaises(FormatError):
            GeoBox(49.4, 60, 10, 0)

    def test_equal_north_south_rejected(self):
        with self.assertRaises(FormatError):
            GeoBox(45, 45, 10, 0)

    def test_north_past_pole_rejected(self):
        with self.assertRaises(FormatError):
            GeoBox(91, 0, 10, 0)

    def test_south_past_pole_rejected(self):
        with self.assertRaises(FormatError):
            GeoBox(0, -90.5, 10, 0)

    def test_poles_accepted(self):
        """A box touching a pole is a boundary case, not a crossing."""
        box = GeoBox(90, -90, 180, -180)
        self.assertEqual(box.north, 90)
        self.assertEqual(box.south, -90)

    def test_non_finite_rejected(self):
        with self.assertRaises(FormatError):
            GeoBox(math.nan, 0, 10, 0)
        with self.assertRaises(FormatError):
            GeoBox(50, 40, math.inf, 0)

    def test_longitudes_normalized(self):
        box = GeoBox(50, 40, 190, -185)
        self.assertEqual(box.east, -170)
        self.assertEqual(box.west, 175)

    def test_wrap_false_keeps_east(self):
        box = GeoBox(50, 40, 190, 170, wrap=False)
        self.assertEqual(box.east, 190)
        self.assertEqual(box.normalized().east, -170)
        self.assertEqual(box.normalized().west, 170)

    def test_immutable(self):
        box = GeoBox(50, 40, 10, 0)
        with self.assertRaises(AttributeError):
            box.north = 60

    def test_spans_and_antimeridian(self):
        box = GeoBox(50, 40, -170, 170)
        self.assertEqual(box.span_ns, 10)
        self.assertEqual(box.span_ew, 20)
        self.assertTrue(box.crosses_antimeridian)
        self.assertFalse(GeoBox(50, 40, 10, 0).crosses_antimeridian)


class TestParseGeoFilename(unittest.TestCase):
    """Test extracting the map name and box from a file name."""

    def test_reversed_north_south_rejected(self):
        with self.assertRaises(FormatError):
            parse_geo_filename("Grouse-Mountain_49.336694_49.470628_-123.132056_-122.9811.jpg")

    def test_valid_name(self):
        name, box = parse_geo_filename(
            "Grouse-Mountain_49.470628_49.336694_-123.132056_-122.9811.jpg"
        )
        self.assertEqual(name, "Grouse-Mountain")
        self.assertEqual(box.north, 49.470628)
        self.assertEqual(box.south, 49.336694)
        self.assertEqual(box.east, -123.132056)
        self.assertEqual(box.west, -122.9811)

    def test_directory_stripped_from_name(self):
        name, box = parse_geo_filename("/maps/sar/Grouse-Mountain_49.47_49.33_-123.13_-122.98.jpg")
        self.assertEqual(name, "Grouse-Mountain")
        self.assertEqual(box.west, -122.98)

    def test_too_few_parts(self):
        with self.assertRaises(FormatError):
            parse_geo_filename("Grouse-Mountain_49.47_49.33_-123.13.jpg")

    def test_too_many_parts(self):
        with self.assertRaises(FormatError):
            parse_geo_filename("Grouse_Mountain_49.47_49.33_-123.13_-122.98.jpg")

    def test_bad_number(self):
        with self.assertRaises(FormatError):
            parse_geo_filename("Grouse-Mountain_49.47_abc_-123.13_-122.98.jpg")

    def test_nan_rejected(self):
        with self.assertRaises(FormatError):
            parse_geo_filename("Grouse-Mountain_nan_49.33_-123.13_-122.98.jpg")

    def test_north_past_pole(self):
        with self.assertRaises(FormatError):
            parse_geo_filename("Top_95.0_80.0_10.0_0.0.jpg")

    def test_longitudes_normalized(self):
        name, box = parse_geo_filename("Dateline_50.0_40.0_190.0_170.0.jpg")
        self.assertEqual(name, "Dateline")
        self.assertEqual(box.east, -170)
        self.assertEqual(box.west, 170)


if __name__ == "__main__":
    unittest.main(verbosity=2)
