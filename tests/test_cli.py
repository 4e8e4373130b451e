"""
Tests for the command-line interface
"""

import json

import pytest

import cli
from conflator.data import load_dataset, save_dataset


@pytest.fixture
def input_file(builder, tmp_path):
    road = {"highway": "residential"}
    builder.way(10, [builder.node(1, -10, 0), builder.node(2, 10, 0)], road)
    builder.way(-1, [builder.node(-1, 0, -30), builder.node(-2, 0, 0.2), builder.node(-3, 0, 30)], road)
    builder.node(-5, 50, 50, {"conflation:conflated": "yes"})
    path = tmp_path / "input.json"
    save_dataset(builder.dataset, str(path))
    return path


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr("sys.argv", ["cli.py", *argv])
    return cli.main()


def test_conflate_and_check(monkeypatch, input_file, tmp_path):
    output = tmp_path / "out.json"
    report = tmp_path / "report.json"
    code = run_cli(
        monkeypatch, "conflate", "-i", str(input_file), "-o", str(output), "--yes", "-r", str(report)
    )
    assert code == 0

    dataset = load_dataset(str(output))
    assert [n.id for n in dataset.way(10).nodes] == [1, -2, 2]
    assert dataset.node(-5).tags == {}
    assert json.loads(report.read_text())["fixes"] == 3

    assert run_cli(monkeypatch, "check", "-i", str(output)) == 0


def test_check_reports_leftovers_and_strips(monkeypatch, input_file, tmp_path):
    assert run_cli(monkeypatch, "check", "-i", str(input_file)) == 2

    cleaned = tmp_path / "cleaned.json"
    assert run_cli(monkeypatch, "check", "-i", str(input_file), "--strip", str(cleaned)) == 0
    assert load_dataset(str(cleaned)).node(-5).tags == {}


def test_selected_primitives_only(monkeypatch, input_file, tmp_path):
    output = tmp_path / "out.json"
    code = run_cli(
        monkeypatch, "conflate", "-i", str(input_file), "-o", str(output), "-y", "--affected-ids", "n-5"
    )
    assert code == 0
    dataset = load_dataset(str(output))
    assert dataset.node(-5).tags == {}
    assert [n.id for n in dataset.way(10).nodes] == [1, 2]


def test_missing_input(monkeypatch, tmp_path):
    missing = str(tmp_path / "nope.json")
    assert run_cli(monkeypatch, "conflate", "-i", missing, "-o", str(tmp_path / "o.json")) == 1


def test_bad_reference_fails_cleanly(monkeypatch, input_file, tmp_path):
    code = run_cli(
        monkeypatch, "conflate", "-i", str(input_file), "-o", str(tmp_path / "o.json"), "-y",
        "--affected-ids", "node 999",
    )
    assert code == 1


def test_merge_ways(monkeypatch, builder, tmp_path):
    road = {"highway": "residential"}
    builder.way(10, [builder.node(1, 0, 0), builder.node(2, 10, 0)], road)
    builder.way(-1, [builder.node(-1, 0.1, 0), builder.node(-2, 10.1, 0), builder.node(-3, 20, 0)], road)
    source = tmp_path / "input.json"
    save_dataset(builder.dataset, str(source))
    output = tmp_path / "merged.json"

    assert run_cli(monkeypatch, "merge-ways", "-i", str(source), "-o", str(output), "--way-ids", "w10", "w-1") == 0
    dataset = load_dataset(str(output))
    assert [n.id for n in dataset.way(10).nodes] == [1, 2, -3]
    assert dataset.way(-1) is None


def test_merge_ways_rejects_non_way(monkeypatch, input_file, tmp_path):
    code = run_cli(
        monkeypatch, "merge-ways", "-i", str(input_file), "-o", str(tmp_path / "o.json"), "--way-ids", "n1"
    )
    assert code == 1
