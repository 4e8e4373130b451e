"""
Tests for UploadGuard
"""

import pytest

from conflator.conflation import UploadBlocked, UploadGuard, default_registry


def test_clean_dataset_passes(builder):
    builder.way(-1, [builder.node(-1, 0, 0), builder.node(-2, 0, 10)], {"highway": "path"})
    assert UploadGuard().check(builder.dataset)


def test_leftover_directives_block(builder):
    builder.node(-1, 0, 0, {"conn": "way 1,node 2,node 3"})
    builder.node(-2, 0, 5, {"dupe": "node 7", "conflation:conflated": "yes"})
    builder.node(-3, 0, 10, {"building": "yes"})

    guard = UploadGuard()
    leftovers = guard.find_leftovers(builder.dataset)
    assert [(x.primitive, x.keys) for x in leftovers] == [
        ("node -2", ["conflation:conflated", "dupe"]),
        ("node -1", ["conn"]),
    ]

    with pytest.raises(UploadBlocked) as excinfo:
        guard.check(builder.dataset)
    assert excinfo.value.offenders == ["node -2", "node -1"]
    assert "2 object(s)" in str(excinfo.value)


def test_deleted_primitives_are_ignored(builder):
    node = builder.node(-1, 0, 0, {"dupe": "node 7"})
    builder.dataset.set_deleted(node, True)
    assert UploadGuard().check(builder.dataset)


def test_cleanup_command(builder):
    first = builder.node(-1, 0, 0, {"conn": "way 1,node 2,node 3", "name": "x"})
    second = builder.node(-2, 0, 5, {"dupe": "node 7"})
    guard = UploadGuard()

    cleanup = guard.build_cleanup_command(builder.dataset)
    cleanup.execute()
    assert first.tags == {"name": "x"}
    assert second.tags == {}
    assert guard.check(builder.dataset)

    cleanup.undo()
    assert second.tags == {"dupe": "node 7"}
    assert guard.build_cleanup_command(builder.dataset) is not None


def test_nothing_to_clean(builder):
    builder.node(-1, 0, 0)
    assert UploadGuard().build_cleanup_command(builder.dataset) is None


def test_custom_marker_key(builder, config):
    config.already_conflated_key = "esri:conflated"
    builder.node(-1, 0, 0, {"esri:conflated": "yes"})
    builder.node(-2, 0, 5, {"conflation:conflated": "yes"})

    leftovers = UploadGuard(default_registry(config)).find_leftovers(builder.dataset)
    assert [x.primitive for x in leftovers] == ["node -1"]
