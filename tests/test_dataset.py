"""
Tests for the dataset, its spatial index and the JSON parser
"""

import json

import pytest

from conflator.data import BBox, DatasetParser, PrimitiveId, PrimitiveType, load_dataset, save_dataset

from conftest import M


def test_search_nodes_and_ways(builder):
    a = builder.node(1, 0, 0)
    b = builder.node(2, 100, 0)
    far = builder.node(3, 5000, 5000)
    way = builder.way(10, [a, b])

    box = BBox.around(50 * M, 0, 60 * M)
    assert builder.dataset.search_nodes(box) == [a, b]
    assert builder.dataset.search_ways(box) == [way]
    assert far not in builder.dataset.search_nodes(box)


def test_index_follows_moves_and_deletions(builder):
    node = builder.node(1, 0, 0)
    box = BBox.around(0, 0, 1 * M)
    assert builder.dataset.search_nodes(box) == [node]

    builder.dataset.set_coord(node, 1.0, 1.0)
    assert builder.dataset.search_nodes(box) == []

    builder.dataset.set_coord(node, 0.0, 0.0)
    builder.dataset.set_deleted(node, True)
    assert builder.dataset.search_nodes(box) == []


def test_referrers_track_way_changes(builder):
    a = builder.node(1, 0, 0)
    b = builder.node(2, 10, 0)
    c = builder.node(3, 20, 0)
    way = builder.way(10, [a, b])
    relation = builder.relation(20, [("", a)])

    assert builder.dataset.referrers(a) == [way, relation]
    assert builder.dataset.parent_ways(a) == [way]

    builder.dataset.set_way_nodes(way, [b, c])
    assert builder.dataset.parent_ways(a) == []
    assert builder.dataset.parent_ways(c) == [way]


def test_duplicate_ids_rejected(builder):
    builder.node(1)
    with pytest.raises(ValueError):
        builder.node(1)


def test_next_new_id_below_existing(builder):
    builder.node(-4)
    assert builder.dataset.next_new_id() == -5


def test_parse_and_dump():
    document = {
        "elements": [
            {"type": "way", "id": -1, "nodes": [-1, 2, 99], "tags": {"highway": "service"}},
            {"type": "node", "id": -1, "lat": 0.0, "lon": 0.0},
            {"type": "node", "id": 2, "lat": 0.0, "lon": 0.001, "tags": {"dupe": "node 3"}},
            {"type": "relation", "id": 5, "members": [{"type": "way", "ref": -1, "role": "outer"}]},
        ]
    }
    dataset = DatasetParser.parse(document)

    way = dataset.way(-1)
    # the dangling node reference is dropped
    assert [n.id for n in way.nodes] == [-1, 2]
    assert dataset.node(2).tags == {"dupe": "node 3"}
    assert dataset.relation(5).members[0].member is way

    dumped = DatasetParser.dump(dataset)
    ids = [(e.type, e.id) for e in dumped.elements]
    assert ("node", -1) in ids and ("way", -1) in ids and ("relation", 5) in ids


def test_load_and_save(tmp_path, builder):
    a = builder.node(-1, 0, 0, {"name": "A"})
    b = builder.node(2, 10, 0)
    builder.way(-2, [a, b], {"highway": "residential"})
    builder.dataset.set_deleted(a, True)

    path = tmp_path / "data.json"
    save_dataset(builder.dataset, str(path))
    data = json.loads(path.read_text())
    assert {"type": "node", "id": -1} not in [{"type": e["type"], "id": e["id"]} for e in data["elements"]]

    save_dataset(builder.dataset, str(path), include_deleted=True)
    loaded = load_dataset(str(path))
    assert loaded.get(PrimitiveId(PrimitiveType.NODE, -1)).deleted
    assert loaded.way(-2).tags == {"highway": "residential"}


def test_load_invalid_document(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"elements": [{"type": "point", "id": 1}]}))
    with pytest.raises(ValueError):
        load_dataset(str(path))
