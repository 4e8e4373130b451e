"""
Missing connection detection

Finds places where new routable ways probably should share a node with
existing data and proposes the directive tag that would make the
consumer passes connect them:

- coincident nodes -> ``dupe`` on the new node
- crossings at an existing vertex -> ``conn`` on the crossing vertex
- way ends stopping just short of another routable way -> ``conn``

Proposals are produced lazily. Each one is offered to the decision
session and, when accepted, applied before the next one is computed, so
later detections see earlier fixes.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Set, Tuple

from loguru import logger

from ..analysis import GeometryUtils
from ..commands import ChangePropertyCommand, Command, SequenceCommand
from ..config import ConflationConfig
from ..data import OsmNode, OsmPrimitive, OsmWay, PrimitiveType
from .base import ConflationCommand
from .decisions import Decision
from .directives import DirectiveCodec


@dataclass
class Proposal:
    """One suggested fix awaiting a decision"""
    kind: str
    description: str
    primitives: Tuple[OsmPrimitive, ...]
    command: Command
    # identifies the pair of features so it is never proposed twice
    pair: frozenset = field(default_factory=frozenset)


class MissingConnectionDetector(ConflationCommand):
    """Propose dupe / conn tags for new routable ways"""

    NAME = "missing_connection"
    DESCRIPTION = "Deduplicate nodes and connect ways"
    INTERESTED_TYPES = (PrimitiveType.WAY,)
    ALLOWS_UNDO = False
    MUST_NOT_PERSIST = False

    def __init__(self, dataset, context=None):
        super().__init__(dataset, context)
        self.cancelled = False
        self.declined = 0

    @classmethod
    def key_for(cls, config: ConflationConfig) -> str:
        return config.routable_key

    # ------------------------------------------------------------------
    # Proposal stream
    # ------------------------------------------------------------------

    def proposals(self, ways: Optional[List[OsmWay]] = None) -> Iterator[Proposal]:
        """
        Lazily yield proposals for ``ways`` (default: the filtered batch)

        The caller applies an accepted proposal before asking for the next
        one; nothing here mutates the dataset.
        """
        if ways is None:
            ways = self.affected
        seen: Set[frozenset] = set()

        for way in ways:
            for node in list(way.nodes):
                proposal = self._duplicate_proposal(node)
                if proposal is not None and self._fresh(proposal, seen):
                    yield proposal

        for way in ways:
            for proposal in self._crossing_proposals(way, seen):
                yield proposal

        if self.config.detection.detect_unconnected_ends:
            for way in ways:
                for node in self._way_ends(way):
                    proposal = self._unconnected_proposal(way, node)
                    if proposal is not None and self._fresh(proposal, seen):
                        yield proposal

    @staticmethod
    def _fresh(proposal: Proposal, seen: Set[frozenset]) -> bool:
        if any(p.deleted for p in proposal.primitives):
            return False
        if proposal.pair in seen:
            return False
        seen.add(proposal.pair)
        return True

    def _usable(self, primitive: OsmPrimitive) -> bool:
        return not primitive.deleted and not self.context.has_directive(primitive)

    # ------------------------------------------------------------------
    # Coincident nodes
    # ------------------------------------------------------------------

    def _duplicate_proposal(self, node: OsmNode) -> Optional[Proposal]:
        if not node.is_new or not self._usable(node):
            return None
        radius = self.config.detection.duplicate_radius_m
        earth = self.config.earth_radius_m

        candidates = []
        for other in self.dataset.search_nodes(node.bbox().expanded_m(radius)):
            if other is node or not self._usable(other):
                continue
            distance = GeometryUtils.node_distance(node, other, earth)
            if distance <= radius:
                candidates.append((other.is_new, distance, other.id, other))
        if not candidates:
            return None

        # upstream nodes first, then nearest
        candidates.sort(key=lambda c: c[:3])
        target = candidates[0][3]
        value = DirectiveCodec.encode_duplicate(target)
        return Proposal(
            kind="duplicate",
            description=f"{node.primitive_id} duplicates {target.primitive_id}; set {self.config.duplicate_key}={value}?",
            primitives=(node, target),
            command=ChangePropertyCommand(self.dataset, [node], self.config.duplicate_key, value),
            pair=frozenset({("duplicate", id(node)), ("duplicate", id(target))}),
        )

    # ------------------------------------------------------------------
    # Crossing ways
    # ------------------------------------------------------------------

    def _crossing_proposals(self, way: OsmWay, seen: Set[frozenset]) -> Iterator[Proposal]:
        routable = self.config.routable_key
        bbox = way.bbox()
        if bbox is None or way.deleted:
            return
        for other in self.dataset.search_ways(bbox):
            if other is way or not other.has_key(routable):
                continue
            pair = frozenset({("crossing", id(way)), ("crossing", id(other))})
            if pair in seen:
                continue
            commands = self._crossing_commands(way, other)
            if not commands:
                continue
            proposal = Proposal(
                kind="crossing",
                description=f"{way.primitive_id} crosses {other.primitive_id} at an existing vertex; connect them?",
                primitives=(way, other),
                command=SequenceCommand.wrap_if_needed("Create intersections", commands),
                pair=pair,
            )
            if self._fresh(proposal, seen):
                yield proposal

    def _crossing_commands(self, way: OsmWay, other: OsmWay) -> List[Command]:
        """conn tags for vertices of ``way`` lying on a crossing with ``other``"""
        points = GeometryUtils.way_intersections(way, other)
        if not points:
            return []
        precision = self.config.detection.crossing_precision_m
        earth = self.config.earth_radius_m

        vertices = []
        for node in way.nodes:
            if not self._usable(node) or other.contains_node(node) or node in vertices:
                continue
            if any(
                GeometryUtils.great_circle_distance(node.lat, node.lon, lat, lon, earth) < precision
                for lon, lat in points
            ):
                vertices.append(node)

        commands = []
        for node in vertices:
            command = self._connection_command(other, node, precision)
            if command is not None:
                commands.append(command)
        return commands

    def _connection_command(self, way: OsmWay, node: OsmNode, max_distance: float) -> Optional[Command]:
        """
        conn tag placing ``node`` on its closest segment of ``way``

        Only existing (upstream) way and segment nodes can be referenced.
        """
        closest = GeometryUtils.closest_way_segment(way, node)
        if closest is None:
            return None
        index, distance = closest
        if distance >= max_distance:
            return None
        first, second = way.nodes[index], way.nodes[index + 1]
        if any(p.is_new for p in (way, first, second)):
            logger.debug(f"Not connecting {node.primitive_id} to unpublished {way.primitive_id}")
            return None
        value = DirectiveCodec.encode_connection(way, first, second)
        return ChangePropertyCommand(self.dataset, [node], self.config.connection_key, value)

    # ------------------------------------------------------------------
    # Unconnected way ends
    # ------------------------------------------------------------------

    def _way_ends(self, way: OsmWay) -> List[OsmNode]:
        if way.deleted or len(way.nodes) < 2 or way.is_closed:
            return []
        ends = [way.first_node, way.last_node]
        return [n for n in ends if len(self.dataset.parent_ways(n)) == 1]

    def _unconnected_proposal(self, way: OsmWay, node: OsmNode) -> Optional[Proposal]:
        if not self._usable(node):
            return None
        routable = self.config.routable_key
        distance_m = self.config.detection.unconnected_distance_m

        candidates = []
        for other in self.dataset.search_ways(node.bbox().expanded_m(distance_m)):
            if other is way or not other.has_key(routable) or other.contains_node(node):
                continue
            closest = GeometryUtils.closest_way_segment(other, node)
            if closest is not None and closest[1] < distance_m:
                candidates.append((closest[1], other.id, other))
        if not candidates:
            return None

        candidates.sort(key=lambda c: c[:2])
        other = candidates[0][2]
        command = self._connection_command(other, node, distance_m)
        if command is None:
            return None
        return Proposal(
            kind="unconnected",
            description=(
                f"{way.primitive_id} ends {candidates[0][0]:.1f} m from {other.primitive_id}; "
                f"connect {node.primitive_id}?"
            ),
            primitives=(node, other),
            command=command,
            pair=frozenset({("unconnected", id(node)), ("unconnected", id(other))}),
        )

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def _build(self, affected):
        """
        Ask about every proposal in turn

        Accepted proposals are applied immediately (through the undo
        handler when there is one), so the returned edits are already
        executed.
        """
        session = self.context.decisions
        prompt_id = self.config.detection.prompt_id
        handler = self.context.undo_handler
        accepted: List[Command] = []

        for proposal in self.proposals(affected):
            decision = session.confirm(prompt_id, proposal.description)
            if decision is Decision.CANCEL_ALL:
                self.cancelled = True
                logger.info(f"{self.NAME}: cancelled after {len(accepted)} accepted fix(es)")
                break
            if decision is Decision.DECLINE:
                self.declined += 1
                continue
            if handler is not None:
                handler.add(proposal.command)
            else:
                proposal.command.execute()
            accepted.append(proposal.command)
            logger.debug(f"Accepted {proposal.kind}: {proposal.description}")
        return accepted
