"""
Tests for GeometryUtils
"""

import pytest

from conflator.analysis import GeometryUtils

from conftest import meters


def test_great_circle_distance_one_degree():
    distance = GeometryUtils.great_circle_distance(0, 0, 1, 0)
    assert distance == pytest.approx(111319.49, rel=1e-6)


def test_node_distance_in_meters(builder):
    a = builder.node(1, 0, 0)
    b = builder.node(2, 3, 4)
    assert GeometryUtils.node_distance(a, b) == pytest.approx(5.0, abs=1e-3)


def test_local_projection_round_trip(builder):
    node = builder.node(1, 12, -7)
    local = GeometryUtils.degrees_to_local([node.coord], 0.0, 0.0)
    assert local[0] == pytest.approx((12.0, -7.0), abs=0.1)
    back = GeometryUtils.local_to_degrees(local, 0.0, 0.0)[0]
    assert back == pytest.approx(node.coord, abs=1e-9)


def test_distance_node_to_segment(builder):
    a = builder.node(1, 0, 0)
    b = builder.node(2, 10, 0)
    assert GeometryUtils.distance_node_to_segment(builder.node(3, 5, 2), a, b) == pytest.approx(2.0, rel=0.01)
    # beyond the end the distance is to the endpoint
    assert GeometryUtils.distance_node_to_segment(builder.node(4, 13, 4), a, b) == pytest.approx(5.0, rel=0.01)


def test_closest_way_segment_skips_own_segments(builder):
    a = builder.node(1, 0, 0)
    b = builder.node(2, 10, 0)
    c = builder.node(3, 10, 10)
    way = builder.way(10, [a, b, c])

    index, distance = GeometryUtils.closest_way_segment(way, builder.node(4, 9, 5))
    assert index == 1
    assert distance == pytest.approx(1.0, abs=0.01)
    # every segment touches b
    assert GeometryUtils.closest_way_segment(builder.way(11, [a, b]), b) is None


def test_way_intersections(builder):
    horizontal = builder.way(10, [builder.node(1, -10, 0), builder.node(2, 10, 0)])
    vertical = builder.way(11, [builder.node(3, 0, -10), builder.node(4, 0, 10)])
    points = GeometryUtils.way_intersections(horizontal, vertical)
    assert len(points) == 1
    assert points[0] == pytest.approx([0.0, 0.0], abs=1e-9)


def test_way_intersections_ignore_shared_vertex(builder):
    shared = builder.node(1, 0, 0)
    first = builder.way(10, [builder.node(2, -10, 0), shared])
    second = builder.way(11, [shared, builder.node(3, 0, 10)])
    assert GeometryUtils.way_intersections(first, second) == []


def test_nodes_inside_polygon(builder):
    square = builder.square(1, 10, 0, 0, 20)
    inside = builder.node(20, 10, 10)
    outside = builder.node(21, 30, 10)
    area = GeometryUtils.area_of(square)
    assert GeometryUtils.nodes_inside(area, [inside, outside] + square.nodes) == [inside]


def test_degenerate_polygon_is_no_area(builder):
    a = builder.node(1, 0, 0)
    b = builder.node(2, 10, 0)
    c = builder.node(3, 20, 0)
    flat = builder.way(10, [a, b, c, a])
    assert GeometryUtils.area_of(flat) is None
    assert GeometryUtils.nodes_inside(None, [a]) == []


def test_multipolygon_area_excludes_inner(builder):
    outer = builder.square(1, 10, 0, 0, 30)
    inner = builder.square(5, 11, 10, 10, 10)
    relation = builder.relation(20, [("outer", outer), ("inner", inner)], {"type": "multipolygon"})
    area = GeometryUtils.area_of(relation)

    in_hole = builder.node(30, 15, 15)
    in_ring = builder.node(31, 5, 5)
    assert GeometryUtils.nodes_inside(area, [in_hole, in_ring]) == [in_ring]


def test_simplify_indices_keeps_corners():
    coords = [(0, 0), (5, 0), (10, 0), (10, 5), (10, 10)]
    assert GeometryUtils.simplify_indices(coords, 0.5) == [0, 2, 4]


def test_way_length(builder):
    way = builder.way(10, [builder.node(1, 0, 0), builder.node(2, 30, 40), builder.node(3, 30, 50)])
    assert GeometryUtils.way_length(way) == pytest.approx(60.0, abs=0.01)
    assert meters(way.nodes[1]) == pytest.approx((30.0, 40.0))
