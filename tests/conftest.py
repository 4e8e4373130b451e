"""
Shared fixtures

Coordinates are given in meters east (x) / north (y) of (0, 0) on the
equator, where one meter is the same fraction of a degree in both axes.
"""

import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from conflator.commands import UndoRedoHandler
from conflator.config import ConflationConfig
from conflator.conflation import (
    AcceptAllDecisionProvider,
    ConflationContext,
    DecisionProvider,
    DecisionSession,
    default_registry,
)
from conflator.data import Dataset, OsmNode, OsmPrimitive, OsmRelation, OsmWay, RelationMember

# degrees per meter on the equator (great-circle radius 6378137 m)
M = 1 / 111319.49079327357


class DatasetBuilder:
    """Small helper to lay out nodes and ways in meters"""

    def __init__(self, name: str = "test"):
        self.dataset = Dataset(name)

    def node(self, id: int, x: float = 0.0, y: float = 0.0, tags: Optional[Dict[str, str]] = None) -> OsmNode:
        return self.dataset.add(OsmNode(id=id, lat=y * M, lon=x * M, tags=dict(tags or {})))

    def way(self, id: int, nodes: Sequence[OsmNode], tags: Optional[Dict[str, str]] = None) -> OsmWay:
        return self.dataset.add(OsmWay(id=id, nodes=list(nodes), tags=dict(tags or {})))

    def relation(
        self,
        id: int,
        members: Iterable[Tuple[str, OsmPrimitive]],
        tags: Optional[Dict[str, str]] = None,
    ) -> OsmRelation:
        return self.dataset.add(OsmRelation(
            id=id,
            members=[RelationMember(role, prim) for role, prim in members],
            tags=dict(tags or {}),
        ))

    def square(self, first_id: int, way_id: int, x: float, y: float, size: float,
               tags: Optional[Dict[str, str]] = None) -> OsmWay:
        """Closed square way with its lower-left corner at (x, y)"""
        corners = [(x, y), (x + size, y), (x + size, y + size), (x, y + size)]
        step = -1 if first_id <= 0 else 1
        nodes = [self.node(first_id + i * step, cx, cy) for i, (cx, cy) in enumerate(corners)]
        return self.way(way_id, nodes + [nodes[0]], tags)


@pytest.fixture
def builder() -> DatasetBuilder:
    return DatasetBuilder()


@pytest.fixture
def config() -> ConflationConfig:
    return ConflationConfig()


@pytest.fixture
def make_context(config):
    """Context factory: make_context(provider=None, undo_handler=None)"""

    def factory(provider: Optional[DecisionProvider] = None,
                undo_handler: Optional[UndoRedoHandler] = None) -> ConflationContext:
        return ConflationContext(
            config=config,
            decisions=DecisionSession(provider or AcceptAllDecisionProvider()),
            directive_keys=frozenset(default_registry(config).non_publishable_keys()),
            undo_handler=undo_handler,
        )

    return factory


def meters(node: OsmNode) -> Tuple[float, float]:
    """(x, y) of a node in meters"""
    return node.lon / M, node.lat / M


def node_ids(way: OsmWay) -> List[int]:
    return [n.id for n in way.nodes]
