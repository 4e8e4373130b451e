"""
Connection splicing

A node tagged ``conn=way 1,node 2,node 3`` is inserted into way 1 between
its adjacent nodes 2 and 3.
"""

import math
from typing import List, Optional

from loguru import logger

from ..analysis import GeometryUtils
from ..commands import (
    AddNodeToWayCommand,
    ChangePropertyCommand,
    Command,
    MoveNodeCommand,
    SequenceCommand,
)
from ..config import ConflationConfig
from ..data import OsmNode, OsmWay, PrimitiveType
from .base import ConflationCommand
from .directives import Connection, DirectiveCodec
from .errors import ConflationError


class ConnectionSpliceCommand(ConflationCommand):
    """Splice nodes carrying a connection directive into their ways"""

    NAME = "connection"
    DESCRIPTION = "Connect nodes to ways"
    INTERESTED_TYPES = (PrimitiveType.NODE,)
    ALLOWS_UNDO = False
    MUST_NOT_PERSIST = True

    @classmethod
    def key_for(cls, config: ConflationConfig) -> str:
        return config.connection_key

    def _build(self, affected):
        key = self.directive_key()
        commands: List[Command] = []

        # Each splice is executed as it is built so that later nodes on the
        # same segment see the nodes already inserted; everything is rolled
        # back before returning.
        try:
            for node in affected:
                try:
                    connections = DirectiveCodec.decode_connection(key, node.get(key))
                    splices = [self.splice_commands(node, c) for c in connections]
                except ConflationError as e:
                    logger.warning(f"Skipping {node.primitive_id}: {e}")
                    continue
                if any(s is None for s in splices):
                    continue

                node_commands = [c for splice in splices for c in splice]
                node_commands.append(ChangePropertyCommand(self.dataset, [node], key, None))
                connect = SequenceCommand(f"Connect {node.primitive_id}", node_commands)
                if not connect.execute():
                    logger.warning(f"Could not connect {node.primitive_id}")
                    continue
                commands.append(connect)
        finally:
            self.rollback(commands)
        return commands

    def splice_commands(self, node: OsmNode, connection: Connection) -> Optional[List[Command]]:
        """
        Edits inserting ``node`` into the connection's way

        Returns None when the connection is stale: nodes missing from the
        way, not adjacent, or the node too far from the segment. A node
        already in the way needs no edit.
        """
        way = DirectiveCodec.resolve(self.dataset, connection.way)
        first = DirectiveCodec.resolve(self.dataset, connection.first)
        second = DirectiveCodec.resolve(self.dataset, connection.second)
        if not isinstance(way, OsmWay):
            logger.warning(f"Skipping {node.primitive_id}: {connection.way} is not a way")
            return None

        if way.contains_node(node):
            return []
        tolerance = self.config.splice.tolerance_m
        if AddNodeToWayCommand.insertion_index(way, first, second, node, tolerance) is None:
            logger.warning(
                f"Skipping {node.primitive_id}: {connection.first} and {connection.second} "
                f"are not adjacent in {connection.way}"
            )
            return None

        distance = GeometryUtils.distance_node_to_segment(node, first, second)
        if distance >= tolerance:
            logger.warning(
                f"Skipping {node.primitive_id}: {distance:.2f} m from {connection.way} "
                f"(tolerance {tolerance} m)"
            )
            return None

        commands: List[Command] = []
        move = self._move_onto_segment(node, way, first, second)
        if move is not None:
            commands.append(move)
        commands.append(AddNodeToWayCommand(self.dataset, node, way, first, second, tolerance))
        return commands

    def _move_onto_segment(self, node: OsmNode, way: OsmWay, first: OsmNode, second: OsmNode) -> Optional[Command]:
        """
        A node already in another way is moved to where that way crosses
        the first-second segment, so the other way keeps its shape
        """
        others = [w for w in self.dataset.parent_ways(node) if w is not way]
        if not others:
            return None
        other = others[0]
        index = other.index_of(node)
        if len(other.nodes) < 2:
            return None
        neighbour = other.nodes[1] if index == 0 else other.nodes[index - 1]

        local = GeometryUtils.degrees_to_local(
            [first.coord, second.coord, node.coord, neighbour.coord], node.lon, node.lat
        )
        point = GeometryUtils.line_line_intersection(*local)
        if point is None:
            return None
        if math.hypot(point[0] - local[2][0], point[1] - local[2][1]) > self.config.splice.tolerance_m:
            return None
        lon, lat = GeometryUtils.local_to_degrees([point], node.lon, node.lat)[0]
        return MoveNodeCommand(self.dataset, node, lat, lon)
