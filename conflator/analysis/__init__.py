"""
Geometry analysis helpers for conflation
"""

from .geometry_utils import GeometryUtils, EARTH_RADIUS_M

__all__ = [
    "GeometryUtils",
    "EARTH_RADIUS_M",
]
