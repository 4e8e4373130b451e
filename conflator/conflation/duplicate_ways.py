"""
Duplicate way merging

Two ways are duplicates when a run of consecutive nodes of one matches a
run of consecutive nodes of the other, node for node, within a small
distance. The nodes of the second way beyond the shared run are added to
the first way and the second way is deleted. Ways without common nodes
are still duplicates when they carry the same ``orig_id``.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from ..analysis import GeometryUtils
from ..commands import (
    ChangeMembersCommand,
    ChangeNodesCommand,
    Command,
    DeleteCommand,
    SequenceCommand,
)
from ..config import ConflationConfig, get_config
from ..data import BBox, Dataset, OsmNode, OsmRelation, OsmWay, RelationMember

# (index in the kept way, index in the merged way) of a matching node
NodePair = Tuple[int, int]


def mergeable(way: OsmWay) -> bool:
    """Live open way whose nodes are all live"""
    return (
        not way.deleted
        and len(way.nodes) > 1
        and not way.is_closed
        and not any(n.deleted for n in way.nodes)
    )


def consecutive(values: Sequence[int]) -> bool:
    return all(b - a == 1 for a, b in zip(values, values[1:]))


class MergeDuplicateWaysCommand(Command):
    """
    Merge ways that duplicate each other

    What gets compared depends on ``ways``:

    - none: every way of the dataset (or of ``bbox``) against the ways around it
    - one: that way against the ways around it
    - several: each way against the next one

    Merges are looked up on the first execution and replayed on redo.
    """

    def __init__(
        self,
        dataset: Dataset,
        ways: Optional[Sequence[OsmWay]] = None,
        bbox: Optional[BBox] = None,
        config: Optional[ConflationConfig] = None,
    ):
        super().__init__(dataset)
        self.config = config or get_config()
        self.scan_dataset = not ways
        self.ways = [w for w in (ways or []) if mergeable(w)]
        self.bbox = bbox
        self.merges: List[Command] = []
        self.command: Optional[Command] = None
        self._scanned = False

    @property
    def description(self) -> str:
        return "Merge duplicate ways"

    def _execute(self) -> bool:
        if not self._scanned:
            # merges run while scanning so later checks see their result
            self.merges = self._scan()
            for merge in reversed(self.merges):
                merge.undo()
            self.command = SequenceCommand.wrap_if_needed(self.description, self.merges)
            self._scanned = True
            logger.info(f"{len(self.merges)} duplicate way(s) merged")
        if self.command is None:
            return True
        return self.command.execute()

    def _undo(self):
        if self.command is not None:
            self.command.undo()

    def participating_primitives(self):
        return self.command.participating_primitives() if self.command is not None else []

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    def _scan(self) -> List[Command]:
        merges: List[Command] = []
        if self.scan_dataset:
            candidates = self.dataset.search_ways(self.bbox) if self.bbox else self.dataset.ways
            for way in sorted(candidates, key=lambda w: w.sort_key()):
                if mergeable(way):
                    merges.extend(self._merge_nearby(way))
        elif len(self.ways) == 1:
            merges.extend(self._merge_nearby(self.ways[0]))
        elif self.ways:
            current = self.ways[0]
            for way in self.ways[1:]:
                if not (mergeable(current) and mergeable(way)):
                    current = way
                    continue
                merge = self.check_for_duplicate_ways(current, way)
                if merge is not None and self._apply(merge):
                    merges.append(merge)
                    if not current.deleted:
                        continue
                current = way
        return merges

    def _merge_nearby(self, way: OsmWay) -> List[Command]:
        merges: List[Command] = []
        area = way.bbox().expanded_m(self.config.duplicate_ways.node_distance_m)
        for other in self.dataset.search_ways(area):
            if other is way or not mergeable(other):
                continue
            if not mergeable(way):
                break
            merge = self.check_for_duplicate_ways(way, other)
            if merge is not None and self._apply(merge):
                merges.append(merge)
        return merges

    @staticmethod
    def _apply(merge: Command) -> bool:
        if not merge.execute():
            logger.warning(f"Could not apply '{merge.description}'")
            return False
        return True

    # ------------------------------------------------------------------
    # Pair check
    # ------------------------------------------------------------------

    def duplicate_nodes(self, way1: OsmWay, way2: OsmWay) -> Dict[int, List[int]]:
        """Index in way1 -> indices in way2 of the same or coincident nodes"""
        radius = self.config.duplicate_ways.node_distance_m
        earth = self.config.earth_radius_m
        matches: Dict[int, List[int]] = {}
        for j, node in enumerate(way1.nodes):
            for k, other in enumerate(way2.nodes):
                if node is other or GeometryUtils.node_distance(node, other, earth) < radius:
                    matches.setdefault(j, []).append(k)
        return matches

    def check_for_duplicate_ways(self, way1: OsmWay, way2: OsmWay) -> Optional[Command]:
        """
        Edit merging one way into the other, None if they are not duplicates

        The upstream way is kept when only one of the two is new.
        """
        if way1.is_new and not way2.is_new:
            way1, way2 = way2, way1

        matches = self.duplicate_nodes(way1, way2)
        if len(matches) > 1:
            if any(len(ks) > 1 for ks in matches.values()):
                return None
            pairs = sorted((j, ks[0]) for j, ks in matches.items())
            way2_indices = [k for _, k in pairs]
            if not consecutive([j for j, _ in pairs]):
                return None
            if not (consecutive(way2_indices) or consecutive(way2_indices[::-1])):
                return None
            return self.merge_ways(way1, way2, pairs)

        key = self.config.duplicate_ways.orig_id_key
        if not matches and way1.has_key(key) and way1.get(key) == way2.get(key):
            return self.merge_ways(way1, way2, [])
        return None

    def merge_ways(self, way1: OsmWay, way2: OsmWay, pairs: List[NodePair]) -> Optional[Command]:
        """
        Extend way1 with the nodes of way2 outside the shared run, then
        delete way2

        Returns None when way2 continues past a node in the middle of way1.
        """
        way2_nodes = list(way2.nodes)
        before: List[OsmNode] = []
        after: List[OsmNode] = []
        if pairs:
            if len(pairs) > 1 and pairs[0][1] > pairs[1][1]:
                way2_nodes.reverse()
                pairs = [(j, len(way2_nodes) - 1 - k) for j, k in pairs]
            first = min(k for _, k in pairs)
            last = max(k for _, k in pairs)
            before = way2_nodes[:first]
            after = way2_nodes[last + 1:]
            if before and pairs[0][0] != 0:
                return None
            if after and pairs[-1][0] != len(way1.nodes) - 1:
                return None

        commands: List[Command] = []
        nodes = before + list(way1.nodes) + after
        if len(nodes) != len(way1.nodes):
            commands.append(ChangeNodesCommand(self.dataset, way1, nodes))
        for referrer in self.dataset.referrers(way2):
            if isinstance(referrer, OsmRelation):
                members = [
                    RelationMember(m.role, way1) if m.member is way2 else m
                    for m in referrer.members
                ]
                commands.append(ChangeMembersCommand(self.dataset, referrer, members))
        commands.append(DeleteCommand(self.dataset, [way2], delete_children=True))
        logger.debug(f"Merging {way2.primitive_id} into {way1.primitive_id}")
        return SequenceCommand(f"Merge {way2.primitive_id} into {way1.primitive_id}", commands)
