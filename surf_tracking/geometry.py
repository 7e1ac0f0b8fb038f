# geometry.py
"""Stateless bearing / screen-position maths shared by GPS and control code."""
from __future__ import annotations

import math
from typing import Iterable, Optional

from surf_tracking.common import Coordinate, GeodeticFix
from surf_tracking.config import RigGeometry

EARTH_RADIUS_M = 6_371_000.0


def normalize_delta(deg: float) -> float:
    """Wrap an angle difference into (-180, 180]."""
    wrapped = math.fmod(deg, 360.0)
    if wrapped > 180.0:
        wrapped -= 360.0
    elif wrapped <= -180.0:
        wrapped += 360.0
    return wrapped


def normalize_heading(deg: float) -> float:
    """Wrap a compass heading into [0, 360)."""
    heading = math.fmod(deg, 360.0)
    if heading < 0.0:
        heading += 360.0
    return heading


def bearing(a: Coordinate, b: Coordinate) -> float:
    """Great-circle initial bearing from ``a`` to ``b`` in degrees, 0 = north."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lon = math.radians(b.longitude - a.longitude)

    y = math.sin(d_lon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(d_lon)
    return normalize_heading(math.degrees(math.atan2(y, x)))


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in metres."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = math.sin(d_lat / 2.0) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2.0) ** 2
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def averaged_coordinate(
    fixes: Iterable[GeodeticFix], min_accuracy_m: float = 3.0
) -> Optional[Coordinate]:
    """
    Accuracy-weighted mean (1/σ²) of a batch of fixes.

    Fixes with a non-positive or NaN accuracy are skipped; σ is floored at
    ``min_accuracy_m`` so one lucky sample cannot dominate.
    """
    sum_lat = sum_lon = total = 0.0
    for fix in fixes:
        acc = fix.accuracy
        if acc is None or math.isnan(acc) or acc <= 0:
            continue
        acc = max(acc, min_accuracy_m)
        weight = 1.0 / (acc * acc)
        sum_lat += fix.latitude * weight
        sum_lon += fix.longitude * weight
        total += weight
    if total <= 0:
        return None
    return Coordinate(sum_lat / total, sum_lon / total)


def expected_screen_x(
    rig: Coordinate,
    subject: Coordinate,
    calibrated_center_bearing: float,
    current_heading: Optional[float],
    hfov: float,
    center_bias_deg: float = 0.0,
) -> Optional[float]:
    """
    Where the subject should appear horizontally (0..1), or ``None`` when the
    bearing falls outside the field of view.

    ``current_heading`` of ``None`` means the camera faces the calibrated
    centre bearing.
    """
    if hfov <= 0:
        return None
    heading = calibrated_center_bearing if current_heading is None else current_heading
    delta = normalize_delta(bearing(rig, subject) - heading + center_bias_deg)
    half = hfov / 2.0
    if abs(delta) > half:
        return None
    return (delta + half) / hfov


def heading_from_actuator_angle(
    angle: float, calibrated_center_bearing: float, rig: RigGeometry
) -> float:
    """Actuator centre angle = calibrated bearing; the span maps to ±coverage/2."""
    offset = (angle - rig.center_angle) * rig.degrees_per_unit
    return normalize_heading(calibrated_center_bearing + offset)


def actuator_angle_from_heading(
    heading: float, calibrated_center_bearing: float, rig: RigGeometry
) -> float:
    """Inverse of :func:`heading_from_actuator_angle`, clamped to the mechanical span."""
    delta = normalize_delta(heading - calibrated_center_bearing)
    angle = rig.center_angle + delta / rig.degrees_per_unit
    return max(rig.min_angle, min(rig.max_angle, angle))
