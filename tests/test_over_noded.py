"""
Tests for OverNodedSimplifier
"""

import pytest

from conflator.conflation import OverNodedSimplifier, ScriptedDecisionProvider

ROAD = {"highway": "track"}


def zigzag(builder, corners, midpoints, way_id=-1000):
    """
    Zigzag way of ``corners`` vertices 10 m apart, alternating between
    y=0 and y=10, with a collinear midpoint in the first ``midpoints``
    segments
    """
    nodes = []
    next_id = -1
    previous = None
    for k in range(corners):
        corner = (10.0 * k, 0.0 if k % 2 == 0 else 10.0)
        if previous is not None and k <= midpoints:
            mid = ((previous[0] + corner[0]) / 2, (previous[1] + corner[1]) / 2)
            nodes.append(builder.node(next_id, *mid))
            next_id -= 1
        nodes.append(builder.node(next_id, *corner))
        next_id -= 1
        previous = corner
    return builder.way(way_id, nodes, ROAD)


def simplifier(builder, make_context, provider=None):
    return OverNodedSimplifier(builder.dataset, make_context(provider))


def test_small_removal_needs_no_prompt(builder, make_context):
    way = zigzag(builder, corners=85, midpoints=15)
    assert len(way.nodes) == 100
    midpoints = way.nodes[1:31:2]

    provider = ScriptedDecisionProvider()
    command = simplifier(builder, make_context, provider)
    command.build([way])
    command.execute()

    assert provider.tolerance_prompts == []
    assert len(way.nodes) == 85
    # dropped vertices belonged to this way only, so they are deleted
    assert all(n.deleted for n in midpoints)


def test_large_removal_prompts_and_can_be_skipped(builder, make_context):
    way = zigzag(builder, corners=70, midpoints=30)
    before = list(way.nodes)

    provider = ScriptedDecisionProvider(tolerances=[None])
    command = simplifier(builder, make_context, provider)
    assert command.build([way]) is None

    assert len(provider.tolerance_prompts) == 1
    prompt_id, description, default = provider.tolerance_prompts[0]
    assert prompt_id == "conflation.simplify_way"
    assert "30 of 100" in description
    assert default == 0.5
    assert way.nodes == before


def test_large_removal_applies_chosen_tolerance(builder, make_context):
    way = zigzag(builder, corners=70, midpoints=30)

    provider = ScriptedDecisionProvider(tolerances=[0.5])
    command = simplifier(builder, make_context, provider)
    command.build([way])
    command.execute()
    assert len(way.nodes) == 70


def test_removal_ratio(builder, make_context):
    way = zigzag(builder, corners=85, midpoints=15)
    command = simplifier(builder, make_context)
    removed, percent = command.removal_ratio(way)
    assert removed == 15
    assert percent == pytest.approx(15.0)
    # a tolerance above the zigzag amplitude flattens everything
    assert command.removal_ratio(way, 50.0)[0] == 98


def test_anchors_are_kept(builder, make_context):
    a = builder.node(-1, 0, 0)
    tagged = builder.node(-2, 10, 0, {"highway": "stop"})
    junction = builder.node(-3, 20, 0)
    plain = builder.node(-4, 30, 0)
    end = builder.node(-5, 40, 0)
    way = builder.way(-10, [a, tagged, junction, plain, end], ROAD)
    builder.way(-11, [junction, builder.node(-6, 20, 10)], ROAD)

    command = simplifier(builder, make_context)
    command.build([way])
    command.execute()

    assert way.nodes == [a, tagged, junction, end]
    assert plain.deleted
    assert not junction.deleted


def test_relation_member_is_kept(builder, make_context):
    a = builder.node(-1, 0, 0)
    middle = builder.node(-2, 10, 0)
    b = builder.node(-3, 20, 0)
    way = builder.way(-10, [a, middle, b], ROAD)
    builder.relation(-20, [("via", middle)])

    command = simplifier(builder, make_context)
    command.build([way])
    command.execute()
    # the relation membership makes it a junction
    assert way.nodes == [a, middle, b]


def test_not_undoable_and_idempotent(builder, make_context):
    way = zigzag(builder, corners=20, midpoints=2)
    first = simplifier(builder, make_context)
    first.build([way])
    first.execute()
    assert not first.allows_undo()
    assert not first.must_not_persist()

    second = simplifier(builder, make_context)
    assert second.build([way]) is None


def test_ways_without_routable_key_are_ignored(builder, make_context):
    way = zigzag(builder, corners=10, midpoints=1)
    builder.dataset.put_tag(way, "highway", None)
    command = simplifier(builder, make_context)
    assert command.build([way]) is None
    assert command.affected == []
