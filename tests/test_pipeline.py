"""
Tests for ConflationPipeline
"""

import json

from conflator.commands import UndoRedoHandler
from conflator.conflation import (
    ConflationPipeline,
    Decision,
    ScriptedDecisionProvider,
)

from conftest import meters, node_ids

ROAD = {"highway": "residential"}


def names(result):
    return [p.name for p in result.report.passes]


def test_detection_feeds_the_splice(builder, config):
    road = builder.way(10, [builder.node(1, -10, 0), builder.node(2, 10, 0)], ROAD)
    middle = builder.node(-2, 0, 0.2)
    new = builder.way(-1, [builder.node(-1, 0, -30), middle, builder.node(-3, 0, 30)], ROAD)

    result = ConflationPipeline(builder.dataset, config=config).run([new])

    assert node_ids(road) == [1, -2, 2]
    assert node_ids(new) == [-1, -2, -3]
    assert middle.tags == {}
    x, y = meters(middle)
    assert abs(x) < 0.01 and abs(y) < 0.01

    assert result.fixes == 2
    assert result.undoable is None
    assert result.permanent is not None
    assert not result.cancelled
    assert result.report.leftovers == []
    edits = {p.name: p.edits for p in result.report.passes}
    assert edits["missing_connection"] == 1
    assert edits["connection"] == 1


def test_two_dead_ends_near_one_road(builder, config):
    road = builder.way(10, [builder.node(1, -20, 0), builder.node(2, 20, 0)], ROAD)
    left_end = builder.node(-1, -8, 3)
    right_end = builder.node(-3, 8, 3)
    service = {"highway": "service"}
    left = builder.way(-1, [left_end, builder.node(-2, -30, 40)], service)
    right = builder.way(-2, [right_end, builder.node(-4, 30, 40)], service)

    result = ConflationPipeline(builder.dataset, config=config).run([left, right])

    assert node_ids(road) == [1, -1, -3, 2]
    assert left_end.tags == {} and right_end.tags == {}
    for end in (left_end, right_end):
        assert abs(meters(end)[1]) < 0.01
    edits = {p.name: p.edits for p in result.report.passes}
    assert edits["missing_connection"] == 2
    assert edits["connection"] == 2
    assert result.fixes == 4
    assert result.report.leftovers == []


def test_passes_run_in_registry_order(builder, config):
    new = builder.way(-1, [builder.node(-1, 0, 0), builder.node(-2, 0, 10)])
    result = ConflationPipeline(builder.dataset, config=config).run([new])
    assert names(result) == [
        "missing_connection",
        "connection",
        "duplicate",
        "address_building",
        "building_address",
        "over_noded",
        "already_conflated",
    ]
    assert result.fixes == 0
    assert result.permanent is None and result.undoable is None


def test_conflicting_pass_is_skipped(builder, config):
    building = builder.square(-1, -1, 0, 0, 20, {"building": "yes"})
    node = builder.node(-9, 10, 10, {"addr:housenumber": "3"})

    result = ConflationPipeline(builder.dataset, config=config).run([building, node])

    assert node.deleted
    summaries = {p.name: p for p in result.report.passes}
    assert summaries["address_building"].edits == 1
    assert summaries["building_address"].skipped_conflict
    assert "building_address" not in [c.NAME for c in result.passes]


def test_undoable_passes_go_to_the_handler(builder, config):
    target = builder.node(5, 0, 0)
    new = builder.node(-1, 0, 0, {"dupe": "node 5"})
    way = builder.way(-1, [new, builder.node(-2, 0, 10)], {config.already_conflated_key: "yes"})
    handler = UndoRedoHandler()

    result = ConflationPipeline(builder.dataset, config=config, undo_handler=handler).run([way])

    assert result.fixes == 2
    assert result.permanent is None
    assert handler.undo_commands == [result.undoable]
    assert node_ids(way) == [5, -2]
    assert way.tags == {}

    handler.undo()
    assert node_ids(way) == [-1, -2]
    assert not new.deleted
    assert new.tags == {"dupe": "node 5"}
    assert way.tags == {config.already_conflated_key: "yes"}
    assert not target.deleted


def test_cancel_is_reported(builder, config):
    builder.way(10, [builder.node(5, 0, 0), builder.node(6, 20, 0)], ROAD)
    n1 = builder.node(-1, 0, 0.2)
    way = builder.way(-1, [n1, builder.node(-2, 20, 0.2)], ROAD)

    provider = ScriptedDecisionProvider([Decision.CANCEL_ALL])
    result = ConflationPipeline(builder.dataset, config=config, provider=provider).run([way])

    assert result.cancelled
    assert result.fixes == 0
    assert len(provider.prompts) == 1
    assert n1.tags == {}


def test_stale_directive_is_left_for_the_upload_guard(builder, config):
    builder.way(10, [builder.node(1, 0, 0), builder.node(2, 10, 0)], ROAD)
    far = builder.node(-1, 5, 8, {"conn": "way 10,node 1,node 2"})

    result = ConflationPipeline(builder.dataset, config=config).run([far])

    assert far.tags == {"conn": "way 10,node 1,node 2"}
    assert [(leftover.primitive, leftover.keys) for leftover in result.report.leftovers] == [("node -1", ["conn"])]


def test_expand_affected(builder):
    a = builder.node(-1, 0, 0)
    b = builder.node(-2, 0, 10)
    way = builder.way(-3, [a, b, a])
    lone = builder.node(-4, 5, 5)
    relation = builder.relation(-5, [("outer", way), ("label", lone)])

    expanded = ConflationPipeline.expand_affected([relation])
    assert [p.primitive_id for p in expanded] == [
        lone.primitive_id,
        b.primitive_id,
        a.primitive_id,
        way.primitive_id,
        relation.primitive_id,
    ]


def test_save_report(builder, config, tmp_path):
    new = builder.way(-1, [builder.node(-1, 0, 0), builder.node(-2, 0, 10)])
    pipeline = ConflationPipeline(builder.dataset, config=config)
    result = pipeline.run([new])

    path = pipeline.save_report(result, str(tmp_path / "reports" / "run.json"))
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    assert data["affected"] == 3
    assert data["fixes"] == 0
    assert data["cancelled"] is False
    assert len(data["passes"]) == 7
