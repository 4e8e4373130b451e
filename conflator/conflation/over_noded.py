"""
Over-noded way simplification

Routable ways traced from imagery often carry far more vertices than their
shape needs. Each way is simplified with Douglas-Peucker in a local metric
projection; endpoints, tagged nodes and junctions are always kept.
"""

from typing import List, Optional, Tuple

from loguru import logger

from ..analysis import GeometryUtils
from ..commands import ChangeNodesCommand, Command, DeleteCommand, SequenceCommand
from ..config import ConflationConfig
from ..data import OsmNode, OsmWay, PrimitiveType
from .base import ConflationCommand


class OverNodedSimplifier(ConflationCommand):
    """Remove redundant vertices from routable ways"""

    NAME = "over_noded"
    DESCRIPTION = "Fix overnoded ways"
    INTERESTED_TYPES = (PrimitiveType.WAY,)
    ALLOWS_UNDO = False
    MUST_NOT_PERSIST = False

    def __init__(self, dataset, context=None):
        super().__init__(dataset, context)
        self.cancelled = False

    @classmethod
    def key_for(cls, config: ConflationConfig) -> str:
        return config.routable_key

    def _build(self, affected):
        settings = self.config.simplify
        session = self.context.decisions
        commands: List[Command] = []

        for way in affected:
            if session.cancelled:
                self.cancelled = True
                break
            if not isinstance(way, OsmWay) or len(way.nodes) < 3:
                continue

            kept = self.simplified_nodes(way, settings.tolerance_m)
            removed = len(way.nodes) - len(kept)
            if removed == 0:
                continue

            percent = removed / len(way.nodes) * 100
            if percent > settings.acceptable_removal_percent:
                length = GeometryUtils.way_length(way)
                tolerance = session.choose_tolerance(
                    settings.prompt_id,
                    f"Simplifying {way.primitive_id} ({length:.0f} m) would remove "
                    f"{removed} of {len(way.nodes)} nodes ({percent:.0f}%).",
                    settings.tolerance_m,
                )
                if tolerance is None:
                    logger.info(f"Not simplifying {way.primitive_id}")
                    continue
                kept = self.simplified_nodes(way, tolerance)
                removed = len(way.nodes) - len(kept)
                if removed == 0:
                    continue

            logger.debug(f"Simplifying {way.primitive_id}: {len(way.nodes)} -> {len(kept)} nodes")
            commands.append(self.simplify_command(way, kept))
        return commands

    def simplify_command(self, way: OsmWay, kept: List[OsmNode]) -> Command:
        """Replace the way's nodes with ``kept`` and delete dropped orphans"""
        kept_ids = {id(n) for n in kept}
        orphans = []
        for node in way.nodes:
            if id(node) in kept_ids or node.tags or node in orphans:
                continue
            if all(ref is way for ref in self.dataset.referrers(node)):
                orphans.append(node)

        commands: List[Command] = [ChangeNodesCommand(self.dataset, way, kept)]
        if orphans:
            commands.append(DeleteCommand(self.dataset, orphans))
        return SequenceCommand(f"Simplify {way.primitive_id}", commands)

    def simplified_nodes(self, way: OsmWay, tolerance: float) -> List[OsmNode]:
        """Nodes of ``way`` kept when simplifying with ``tolerance`` meters"""
        nodes = way.nodes
        anchors = [i for i, node in enumerate(nodes) if self._is_anchor(way, i, node)]

        ref = nodes[0]
        local = GeometryUtils.degrees_to_local(way.get_coordinates(), ref.lon, ref.lat)
        kept_indices = []
        for start, end in zip(anchors, anchors[1:]):
            section = GeometryUtils.simplify_indices(local[start:end + 1], tolerance)
            kept_indices.extend(start + i for i in section[:-1])
        kept_indices.append(anchors[-1])
        return [nodes[i] for i in kept_indices]

    def _is_anchor(self, way: OsmWay, index: int, node: OsmNode) -> bool:
        if index == 0 or index == len(way.nodes) - 1:
            return True
        if node.tags:
            return True
        if sum(1 for n in way.nodes if n is node) > 1:
            return True
        return len(self.dataset.referrers(node)) > 1

    def removal_ratio(self, way: OsmWay, tolerance: Optional[float] = None) -> Tuple[int, float]:
        """(nodes removed, percent removed) for a tolerance, without editing"""
        tolerance = self.config.simplify.tolerance_m if tolerance is None else tolerance
        kept = self.simplified_nodes(way, tolerance)
        removed = len(way.nodes) - len(kept)
        return removed, removed / len(way.nodes) * 100 if way.nodes else 0.0
