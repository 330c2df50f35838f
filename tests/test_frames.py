"""
Unit Tests for Reference Frame Transformations

Run with:
    python -m pytest tests/test_frames.py -v
"""

import math
import unittest
from datetime import datetime, timedelta, timezone

import numpy as np

from orbit_tracker.config import EARTH_ROTATION_RATE
from orbit_tracker.frames import (
    WGS84_A_KM,
    WGS84_F,
    EarthFixedState,
    ecef_to_geodetic,
    ecef_to_presentation,
    gmst_rad,
    julian_date,
    rotate_teme_to_ecef,
    teme_to_ecef,
)
from orbit_tracker.propagator import InertialState, propagate
from orbit_tracker.tle_parser import TLEParser
from tle_samples import ISS_LINE1, ISS_LINE2

J2000 = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestSiderealTime(unittest.TestCase):
    """Test Julian date and GMST computation."""

    def test_julian_date_j2000(self):
        """Test that J2000.0 is JD 2451545.0."""
        jd, fr = julian_date(J2000)
        self.assertEqual(jd, 2451544.5)
        self.assertAlmostEqual(fr, 0.5, places=12)

    def test_julian_date_keeps_microseconds(self):
        """Test that sub-second precision reaches the day fraction."""
        _, fr0 = julian_date(J2000)
        _, fr1 = julian_date(J2000 + timedelta(microseconds=500000))
        self.assertAlmostEqual((fr1 - fr0) * 86400.0, 0.5, places=6)

    def test_gmst_at_j2000(self):
        """Test GMST at J2000.0 (280.46061837 deg)."""
        self.assertAlmostEqual(math.degrees(gmst_rad(J2000)), 280.46061837, places=6)

    def test_gmst_vallado_example(self):
        """Test Vallado Example 3-5: 1992-08-20 12:14 UT1 gives GMST 152.578788 deg."""
        dt = datetime(1992, 8, 20, 12, 14, 0, tzinfo=timezone.utc)
        self.assertAlmostEqual(math.degrees(gmst_rad(dt)), 152.578788, places=4)

    def test_gmst_wraps(self):
        """Test that GMST stays within [0, 2π) across many days."""
        for days in range(0, 4000, 97):
            angle = gmst_rad(J2000 + timedelta(days=days, hours=days % 24))
            self.assertGreaterEqual(angle, 0.0)
            self.assertLess(angle, 2.0 * math.pi)

    def test_gmst_sidereal_rate(self):
        """Test that GMST advances by the Earth rotation rate."""
        a = gmst_rad(J2000)
        b = gmst_rad(J2000 + timedelta(seconds=60))
        self.assertAlmostEqual((b - a) / 60.0, EARTH_ROTATION_RATE, delta=1e-9)

    def test_dut1_offset(self):
        """Test that DUT1 shifts the angle like an equal shift in time."""
        shifted = gmst_rad(J2000, dut1_seconds=0.4)
        later = gmst_rad(J2000 + timedelta(microseconds=400000))
        self.assertAlmostEqual(shifted, later, places=10)


class TestTemeToEcef(unittest.TestCase):
    """Test the inertial to Earth-fixed rotation."""

    def test_zero_angle_is_identity_for_position(self):
        """Test that GMST = 0 leaves the position unchanged."""
        r, _ = rotate_teme_to_ecef(np.array([7000.0, 100.0, 50.0]), np.zeros(3), 0.0)
        np.testing.assert_allclose(r, [7000.0, 100.0, 50.0])

    def test_quarter_turn(self):
        """Test rotation by 90 deg moves +Y inertial onto +X Earth-fixed."""
        r, _ = rotate_teme_to_ecef(np.array([0.0, 7000.0, 0.0]), np.zeros(3), math.pi / 2.0)
        np.testing.assert_allclose(r, [7000.0, 0.0, 0.0], atol=1e-9)

    def test_earth_rotation_velocity_term(self):
        """Test that a point fixed in inertial space drifts westward in ECEF."""
        _, v = rotate_teme_to_ecef(np.array([7000.0, 0.0, 0.0]), np.zeros(3), 0.0)
        np.testing.assert_allclose(v, [0.0, -EARTH_ROTATION_RATE * 7000.0, 0.0], atol=1e-12)

    def test_norm_and_z_preserved(self):
        """Test that the rotation preserves radius and the Z component."""
        record = TLEParser().parse(ISS_LINE1, ISS_LINE2)
        inertial = propagate(record, 30.0)
        utc = record.epoch + timedelta(minutes=30)
        ecef = teme_to_ecef(inertial, utc)

        self.assertIsInstance(ecef, EarthFixedState)
        self.assertAlmostEqual(
            np.linalg.norm(ecef.position_km), np.linalg.norm(inertial.position_km), places=9
        )
        self.assertEqual(ecef.position_km[2], inertial.position_km[2])

    def test_geodetic_altitude_of_iss(self):
        """Test that the ISS sub-satellite point is at a plausible altitude."""
        record = TLEParser().parse(ISS_LINE1, ISS_LINE2)
        ecef = teme_to_ecef(propagate(record, 0.0), record.epoch)
        lat, lon, alt = ecef.geodetic()

        self.assertLessEqual(abs(lat), 52.0)
        self.assertTrue(-180.0 <= lon <= 180.0)
        self.assertGreater(alt, 380.0)
        self.assertLess(alt, 440.0)

    def test_pure_function(self):
        """Test that the transform gives identical results on repeat."""
        state = InertialState(position_km=(7000.0, 10.0, 20.0), velocity_km_s=(0.0, 7.5, 0.1))
        utc = J2000 + timedelta(days=123.25)
        self.assertEqual(teme_to_ecef(state, utc), teme_to_ecef(state, utc))


class TestPresentationAndGeodetic(unittest.TestCase):
    """Test presentation remap and geodetic conversion."""

    def test_presentation_axes(self):
        """Test the fixed axis reassignment and scaling."""
        self.assertEqual(ecef_to_presentation((1.0, 2.0, 3.0), 2.0), (4.0, 6.0, 2.0))
        self.assertEqual(ecef_to_presentation((1.0, 2.0, 3.0)), (2.0, 3.0, 1.0))

    def test_equator_point(self):
        """Test a point above the equator at the prime meridian."""
        lat, lon, alt = ecef_to_geodetic(np.array([WGS84_A_KM + 400.0, 0.0, 0.0]))
        self.assertAlmostEqual(lat, 0.0, places=9)
        self.assertAlmostEqual(lon, 0.0, places=9)
        self.assertAlmostEqual(alt, 400.0, places=6)

    def test_pole_point(self):
        """Test a point above the north pole."""
        b = WGS84_A_KM * (1.0 - WGS84_F)
        lat, _, alt = ecef_to_geodetic(np.array([0.0, 0.0, b + 100.0]))
        self.assertAlmostEqual(lat, 90.0, places=9)
        self.assertAlmostEqual(alt, 100.0, places=6)

    def test_mid_latitude_point(self):
        """Test a point at 45 deg latitude, 90 deg east, 500 km altitude."""
        lat_rad = math.radians(45.0)
        e2 = 2.0 * WGS84_F - WGS84_F ** 2
        n = WGS84_A_KM / math.sqrt(1.0 - e2 * math.sin(lat_rad) ** 2)
        r = np.array([
            0.0,
            (n + 500.0) * math.cos(lat_rad),
            (n * (1.0 - e2) + 500.0) * math.sin(lat_rad),
        ])
        lat, lon, alt = ecef_to_geodetic(r)
        self.assertAlmostEqual(lat, 45.0, places=8)
        self.assertAlmostEqual(lon, 90.0, places=8)
        self.assertAlmostEqual(alt, 500.0, places=5)

    def test_southern_hemisphere_point(self):
        """Test a point at -60 deg latitude, -120 deg longitude, 20000 km altitude."""
        lat_rad = math.radians(-60.0)
        lon_rad = math.radians(-120.0)
        e2 = 2.0 * WGS84_F - WGS84_F ** 2
        n = WGS84_A_KM / math.sqrt(1.0 - e2 * math.sin(lat_rad) ** 2)
        r = np.array([
            (n + 20000.0) * math.cos(lat_rad) * math.cos(lon_rad),
            (n + 20000.0) * math.cos(lat_rad) * math.sin(lon_rad),
            (n * (1.0 - e2) + 20000.0) * math.sin(lat_rad),
        ])
        lat, lon, alt = ecef_to_geodetic(r)
        self.assertAlmostEqual(lat, -60.0, places=8)
        self.assertAlmostEqual(lon, -120.0, places=8)
        self.assertAlmostEqual(alt, 20000.0, places=5)


if __name__ == "__main__":
    unittest.main()
