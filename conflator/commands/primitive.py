"""
Primitive edit commands

Each command stores the state it replaces so that undo restores it exactly.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from ..analysis import GeometryUtils
from ..data import (
    Dataset,
    OsmNode,
    OsmPrimitive,
    OsmRelation,
    OsmWay,
    RelationMember,
)
from .base import Command


class ChangePropertyCommand(Command):
    """Set (or remove, with value None / "") one tag on several primitives"""

    def __init__(self, dataset: Dataset, primitives: Iterable[OsmPrimitive], key: str, value: Optional[str]):
        super().__init__(dataset)
        self.key = key
        self.value = value if value != "" else None
        # only primitives whose value actually changes
        self.primitives = [p for p in primitives if p.tags.get(key) != self.value]
        self._old: List[Optional[str]] = []

    @property
    def description(self) -> str:
        if self.value is None:
            return f"Remove '{self.key}' from {len(self.primitives)} object(s)"
        return f"Set {self.key}={self.value} on {len(self.primitives)} object(s)"

    def _execute(self) -> bool:
        self._old = [p.tags.get(self.key) for p in self.primitives]
        for prim in self.primitives:
            self.dataset.put_tag(prim, self.key, self.value)
        return True

    def _undo(self):
        for prim, old in zip(self.primitives, self._old):
            self.dataset.put_tag(prim, self.key, old)

    def participating_primitives(self) -> List[OsmPrimitive]:
        return list(self.primitives)

    def __len__(self) -> int:
        return len(self.primitives)


class ChangePropertiesCommand(Command):
    """Apply a tag map to one primitive (None values remove keys)"""

    def __init__(self, dataset: Dataset, primitive: OsmPrimitive, tags: Dict[str, Optional[str]]):
        super().__init__(dataset)
        self.primitive = primitive
        self.tags = {k: (v if v != "" else None) for k, v in tags.items()}
        self._old: Dict[str, str] = {}

    @property
    def description(self) -> str:
        return f"Change {len(self.tags)} tag(s) of {self.primitive.primitive_id}"

    def _execute(self) -> bool:
        self._old = dict(self.primitive.tags)
        for key, value in self.tags.items():
            self.dataset.put_tag(self.primitive, key, value)
        return True

    def _undo(self):
        self.dataset.set_tags(self.primitive, self._old)

    def participating_primitives(self) -> List[OsmPrimitive]:
        return [self.primitive]


class ChangeNodesCommand(Command):
    """Replace the node list of a way"""

    def __init__(self, dataset: Dataset, way: OsmWay, nodes: List[OsmNode]):
        super().__init__(dataset)
        self.way = way
        self.nodes = list(nodes)
        self._old: List[OsmNode] = []

    @property
    def description(self) -> str:
        return f"Change nodes of {self.way.primitive_id}"

    def _execute(self) -> bool:
        self._old = list(self.way.nodes)
        self.dataset.set_way_nodes(self.way, self.nodes)
        return True

    def _undo(self):
        self.dataset.set_way_nodes(self.way, self._old)

    def participating_primitives(self) -> List[OsmPrimitive]:
        return [self.way]


class ChangeMembersCommand(Command):
    """Replace the member list of a relation"""

    def __init__(self, dataset: Dataset, relation: OsmRelation, members: List[RelationMember]):
        super().__init__(dataset)
        self.relation = relation
        self.members = list(members)
        self._old: List[RelationMember] = []

    @property
    def description(self) -> str:
        return f"Change members of {self.relation.primitive_id}"

    def _execute(self) -> bool:
        self._old = list(self.relation.members)
        self.dataset.set_relation_members(self.relation, self.members)
        return True

    def _undo(self):
        self.dataset.set_relation_members(self.relation, self._old)

    def participating_primitives(self) -> List[OsmPrimitive]:
        return [self.relation]


class MoveNodeCommand(Command):
    """Move a node to a new coordinate"""

    def __init__(self, dataset: Dataset, node: OsmNode, lat: float, lon: float):
        super().__init__(dataset)
        self.node = node
        self.lat = lat
        self.lon = lon
        self._old: Tuple[float, float] = (node.lat, node.lon)

    @property
    def description(self) -> str:
        return f"Move {self.node.primitive_id}"

    def _execute(self) -> bool:
        self._old = (self.node.lat, self.node.lon)
        self.dataset.set_coord(self.node, self.lat, self.lon)
        return True

    def _undo(self):
        self.dataset.set_coord(self.node, *self._old)

    def participating_primitives(self) -> List[OsmPrimitive]:
        return [self.node]


class DeleteCommand(Command):
    """
    Mark primitives deleted

    When ``delete_children`` is set, nodes of deleted ways that end up with
    no remaining parent and no tags are deleted too.
    """

    def __init__(self, dataset: Dataset, primitives: Iterable[OsmPrimitive], delete_children: bool = False):
        super().__init__(dataset)
        self.primitives = [p for p in primitives if not p.deleted]
        self.delete_children = delete_children
        self._removed: List[OsmPrimitive] = []

    @property
    def description(self) -> str:
        return f"Delete {len(self.primitives)} object(s)"

    def _execute(self) -> bool:
        self._removed = []
        for prim in self.primitives:
            self.dataset.set_deleted(prim, True)
            self._removed.append(prim)
        if self.delete_children:
            for prim in list(self._removed):
                if not isinstance(prim, OsmWay):
                    continue
                for node in prim.nodes:
                    if node.deleted or node.tags or self.dataset.referrers(node):
                        continue
                    self.dataset.set_deleted(node, True)
                    self._removed.append(node)
        return True

    def _undo(self):
        for prim in reversed(self._removed):
            self.dataset.set_deleted(prim, False)
        self._removed = []

    def participating_primitives(self) -> List[OsmPrimitive]:
        return list(self.primitives)


class AddNodeToWayCommand(Command):
    """
    Insert a node into a way between two adjacent nodes

    When ``max_distance_m`` is given and the two nodes are no longer
    adjacent (other nodes were already spliced between them), the node
    goes onto the closest segment of the run from first to second, as
    long as every node of that run lies along first-second and the
    segment is within ``max_distance_m`` of the node.

    Fails (returns False) when no insertion point is found at execution
    time, so a stale request never edits the way.
    """

    def __init__(
        self,
        dataset: Dataset,
        node: OsmNode,
        way: OsmWay,
        first: OsmNode,
        second: OsmNode,
        max_distance_m: Optional[float] = None,
    ):
        super().__init__(dataset)
        self.node = node
        self.way = way
        self.first = first
        self.second = second
        self.max_distance_m = max_distance_m
        self._old: List[OsmNode] = []

    @property
    def description(self) -> str:
        return f"Add {self.node.primitive_id} to {self.way.primitive_id}"

    @staticmethod
    def insertion_index(
        way: OsmWay,
        first: OsmNode,
        second: OsmNode,
        node: Optional[OsmNode] = None,
        max_distance_m: Optional[float] = None,
    ) -> Optional[int]:
        """Index to insert at, or None if first/second are not adjacent in way"""
        nodes = way.nodes
        for i in range(len(nodes) - 1):
            a, b = nodes[i], nodes[i + 1]
            if (a is first and b is second) or (a is second and b is first):
                return i + 1
        if node is None or max_distance_m is None:
            return None
        return AddNodeToWayCommand._index_between(way, first, second, node, max_distance_m)

    @staticmethod
    def _index_between(
        way: OsmWay, first: OsmNode, second: OsmNode, node: OsmNode, max_distance_m: float
    ) -> Optional[int]:
        start, end = way.index_of(first), way.index_of(second)
        if start < 0 or end < 0 or start == end:
            return None
        start, end = sorted((start, end))
        run = way.nodes[start:end + 1]
        if any(
            GeometryUtils.distance_node_to_segment(n, first, second) >= max_distance_m
            for n in run[1:-1]
        ):
            return None

        best: Optional[Tuple[float, int]] = None
        for i in range(len(run) - 1):
            distance = GeometryUtils.distance_node_to_segment(node, run[i], run[i + 1])
            if distance < max_distance_m and (best is None or distance < best[0]):
                best = (distance, start + i + 1)
        return best[1] if best is not None else None

    def _execute(self) -> bool:
        index = self.insertion_index(self.way, self.first, self.second, self.node, self.max_distance_m)
        if index is None:
            logger.warning(
                f"{self.first.primitive_id} and {self.second.primitive_id} are not adjacent "
                f"in {self.way.primitive_id}"
            )
            return False
        self._old = list(self.way.nodes)
        nodes = list(self.way.nodes)
        nodes.insert(index, self.node)
        self.dataset.set_way_nodes(self.way, nodes)
        return True

    def _undo(self):
        self.dataset.set_way_nodes(self.way, self._old)

    def participating_primitives(self) -> List[OsmPrimitive]:
        return [self.node, self.way]
