"""
Geometry utilities for distance, projection and containment calculations
"""

import math
from functools import lru_cache
from typing import List, Tuple, Optional, Sequence

import numpy as np
from pyproj import Transformer
from shapely.geometry import LineString, Point, Polygon, MultiPolygon
from shapely.ops import polygonize, unary_union

from ..data import OsmNode, OsmWay, OsmRelation, OsmPrimitive

EARTH_RADIUS_M = 6378137.0


@lru_cache(maxsize=256)
def _local_transformers(ref_lon: float, ref_lat: float) -> Tuple[Transformer, Transformer]:
    """Forward / inverse transformers for an equidistant projection centered on ref

    Callers round the reference to ~1 km so nearby features share a projection.
    """
    local_crs = (
        f"+proj=aeqd +lat_0={ref_lat} +lon_0={ref_lon} +x_0=0 +y_0=0 "
        f"+datum=WGS84 +units=m +no_defs"
    )
    forward = Transformer.from_crs("EPSG:4326", local_crs, always_xy=True)
    inverse = Transformer.from_crs(local_crs, "EPSG:4326", always_xy=True)
    return forward, inverse


class GeometryUtils:
    """Utility functions for geometric operations"""

    @staticmethod
    def great_circle_distance(
        lat1: float, lon1: float, lat2: float, lon2: float,
        radius_m: float = EARTH_RADIUS_M
    ) -> float:
        """Haversine distance in meters"""
        phi1 = math.radians(lat1)
        phi2 = math.radians(lat2)
        dphi = math.radians(lat2 - lat1)
        dlmb = math.radians(lon2 - lon1)
        a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
        return 2 * radius_m * math.asin(min(1.0, math.sqrt(a)))

    @staticmethod
    def node_distance(a: OsmNode, b: OsmNode, radius_m: float = EARTH_RADIUS_M) -> float:
        return GeometryUtils.great_circle_distance(a.lat, a.lon, b.lat, b.lon, radius_m)

    @staticmethod
    def degrees_to_local(
        coords: Sequence[Sequence[float]],
        ref_lon: float,
        ref_lat: float
    ) -> List[Tuple[float, float]]:
        """
        Convert [lon, lat] coordinates to local [x, y] meters from reference
        """
        if len(coords) == 0:
            return []
        forward, _ = _local_transformers(round(ref_lon, 2), round(ref_lat, 2))
        arr = np.asarray(coords, dtype=float)
        xs, ys = forward.transform(arr[:, 0], arr[:, 1])
        return list(zip(np.atleast_1d(xs).tolist(), np.atleast_1d(ys).tolist()))

    @staticmethod
    def local_to_degrees(
        local_coords: Sequence[Sequence[float]],
        ref_lon: float,
        ref_lat: float
    ) -> List[List[float]]:
        """
        Convert local [x, y] meters to [lon, lat] degrees
        """
        if len(local_coords) == 0:
            return []
        _, inverse = _local_transformers(round(ref_lon, 2), round(ref_lat, 2))
        arr = np.asarray(local_coords, dtype=float)
        lons, lats = inverse.transform(arr[:, 0], arr[:, 1])
        return [[lon, lat] for lon, lat in zip(np.atleast_1d(lons).tolist(), np.atleast_1d(lats).tolist())]

    @staticmethod
    def distance_point_to_line(
        point: Tuple[float, float],
        line_start: Tuple[float, float],
        line_end: Tuple[float, float]
    ) -> float:
        """Calculate perpendicular distance from point to line segment"""
        closest_x, closest_y = GeometryUtils.closest_point_on_segment(point, line_start, line_end)
        px, py = point
        return math.sqrt((px - closest_x)**2 + (py - closest_y)**2)

    @staticmethod
    def closest_point_on_segment(
        point: Tuple[float, float],
        line_start: Tuple[float, float],
        line_end: Tuple[float, float]
    ) -> Tuple[float, float]:
        """Projection of point onto the segment (clamped to its ends)"""
        px, py = point
        x1, y1 = line_start
        x2, y2 = line_end

        dx = x2 - x1
        dy = y2 - y1

        if dx == 0 and dy == 0:
            # Line is a point
            return (x1, y1)

        t = max(0, min(1, ((px - x1) * dx + (py - y1) * dy) / (dx*dx + dy*dy)))
        return (x1 + t * dx, y1 + t * dy)

    @staticmethod
    def distance_node_to_segment(node: OsmNode, first: OsmNode, second: OsmNode) -> float:
        """Meters between a node and the segment first-second"""
        local = GeometryUtils.degrees_to_local(
            [node.coord, first.coord, second.coord], node.lon, node.lat
        )
        return GeometryUtils.distance_point_to_line(local[0], local[1], local[2])

    @staticmethod
    def closest_way_segment(way: OsmWay, node: OsmNode) -> Optional[Tuple[int, float]]:
        """
        Closest segment of ``way`` to ``node``

        Returns (index of the segment's first node, distance in meters),
        or None for ways with fewer than two nodes. Segments touching the
        node itself are ignored.
        """
        if len(way.nodes) < 2:
            return None
        local = GeometryUtils.degrees_to_local(
            [node.coord] + way.get_coordinates(), node.lon, node.lat
        )
        point, coords = local[0], local[1:]
        best = None
        for i in range(len(coords) - 1):
            if way.nodes[i] is node or way.nodes[i + 1] is node:
                continue
            dist = GeometryUtils.distance_point_to_line(point, coords[i], coords[i + 1])
            if best is None or dist < best[1]:
                best = (i, dist)
        return best

    @staticmethod
    def line_line_intersection(
        p1: Tuple[float, float], p2: Tuple[float, float],
        p3: Tuple[float, float], p4: Tuple[float, float]
    ) -> Optional[Tuple[float, float]]:
        """Intersection of the infinite lines p1-p2 and p3-p4, None if parallel"""
        d1x, d1y = p2[0] - p1[0], p2[1] - p1[1]
        d2x, d2y = p4[0] - p3[0], p4[1] - p3[1]
        cross = d1x * d2y - d1y * d2x
        if abs(cross) < 1e-12:
            return None
        t = ((p3[0] - p1[0]) * d2y - (p3[1] - p1[1]) * d2x) / cross
        return (p1[0] + t * d1x, p1[1] + t * d1y)

    @staticmethod
    def way_intersections(way: OsmWay, other: OsmWay) -> List[List[float]]:
        """
        Points where the two ways cross, as [lon, lat]

        Shared vertices and degenerate ways give no points.
        """
        if len(way.nodes) < 2 or len(other.nodes) < 2:
            return []
        ref = way.nodes[0]
        local_a = GeometryUtils.degrees_to_local(way.get_coordinates(), ref.lon, ref.lat)
        local_b = GeometryUtils.degrees_to_local(other.get_coordinates(), ref.lon, ref.lat)
        line_a = LineString(local_a)
        line_b = LineString(local_b)
        if line_a.length == 0 or line_b.length == 0 or not line_a.intersects(line_b):
            return []
        inter = line_a.intersection(line_b)
        points = []
        for geom in getattr(inter, "geoms", [inter]):
            if isinstance(geom, Point):
                points.append((geom.x, geom.y))
            elif isinstance(geom, LineString):
                # overlapping segments: use their ends
                points.extend(geom.coords)
        shared = {(n.lon, n.lat) for n in way.nodes if other.contains_node(n)}
        result = []
        for lon, lat in GeometryUtils.local_to_degrees(points, ref.lon, ref.lat):
            if any(
                GeometryUtils.great_circle_distance(lat, lon, s_lat, s_lon) < 1e-3
                for s_lon, s_lat in shared
            ):
                continue
            result.append([lon, lat])
        return result

    @staticmethod
    def way_polygon(way: OsmWay) -> Optional[Polygon]:
        """Polygon of a closed way, None when degenerate"""
        if not way.is_closed:
            return None
        poly = Polygon(way.get_coordinates())
        if poly.is_empty or not poly.is_valid or poly.area == 0:
            return None
        return poly

    @staticmethod
    def relation_polygon(relation: OsmRelation) -> Optional[MultiPolygon]:
        """Area of a multipolygon relation (outer minus inner rings), None when degenerate"""
        outers, inners = [], []
        for member in relation.members:
            if not isinstance(member.member, OsmWay) or member.member.deleted:
                continue
            coords = member.member.get_coordinates()
            if len(coords) < 2:
                continue
            (inners if member.role == "inner" else outers).append(LineString(coords))
        if not outers:
            return None
        outer_area = unary_union(list(polygonize(outers)))
        if outer_area.is_empty:
            return None
        if inners:
            inner_area = unary_union(list(polygonize(inners)))
            outer_area = outer_area.difference(inner_area)
        if outer_area.is_empty or not outer_area.is_valid:
            return None
        if isinstance(outer_area, Polygon):
            outer_area = MultiPolygon([outer_area])
        return outer_area

    @staticmethod
    def area_of(primitive: OsmPrimitive):
        """Polygonal area of a closed way or multipolygon relation, or None"""
        if isinstance(primitive, OsmWay):
            return GeometryUtils.way_polygon(primitive)
        if isinstance(primitive, OsmRelation):
            return GeometryUtils.relation_polygon(primitive)
        return None

    @staticmethod
    def nodes_inside(area, nodes: Sequence[OsmNode]) -> List[OsmNode]:
        """Nodes strictly inside ``area`` (a shapely polygon); empty for no area"""
        if area is None or area.is_empty:
            return []
        return [n for n in nodes if area.contains(Point(n.lon, n.lat))]

    @staticmethod
    def simplify_indices(local_coords: Sequence[Tuple[float, float]], tolerance: float) -> List[int]:
        """
        Indices of the vertices kept by Douglas-Peucker simplification

        The first and last vertex are always kept.
        """
        n = len(local_coords)
        if n <= 2:
            return list(range(n))
        line = LineString(local_coords)
        if line.length == 0:
            return [0, n - 1]
        simplified = line.simplify(tolerance, preserve_topology=False)
        kept = []
        pointer = 0
        for coord in simplified.coords:
            while pointer < n and tuple(local_coords[pointer]) != tuple(coord):
                pointer += 1
            if pointer < n:
                kept.append(pointer)
                pointer += 1
        if not kept or kept[0] != 0:
            kept.insert(0, 0)
        if kept[-1] != n - 1:
            kept.append(n - 1)
        return kept

    @staticmethod
    def way_length(way: OsmWay) -> float:
        """Length of a way in meters (great-circle per segment)"""
        total = 0.0
        for a, b in zip(way.nodes, way.nodes[1:]):
            total += GeometryUtils.node_distance(a, b)
        return total
