"""
Building / address merging

Two passes share the same merge rules:

- AddressBuildingMerger starts from new buildings and pulls in the single
  address node standing inside each one.
- BuildingAddressMerger starts from new address nodes and pushes them onto
  an existing matching address, or onto the one building containing them.

Ambiguous situations (no candidate, or several) are left alone.
"""

from typing import Dict, List, Optional, Set

from loguru import logger

from ..analysis import GeometryUtils
from ..commands import (
    ChangeMembersCommand,
    ChangePropertiesCommand,
    Command,
    DeleteCommand,
    SequenceCommand,
)
from ..config import ConflationConfig
from ..data import BBox, OsmNode, OsmPrimitive, OsmRelation, PrimitiveType, RelationMember
from .base import ConflationCommand


def merge_sources(*values: Optional[str]) -> Optional[str]:
    """Join ``;``-separated source values, sorted and without repeats"""
    sources = set()
    for value in values:
        if not value:
            continue
        sources.update(s.strip() for s in value.split(";") if s.strip())
    return ";".join(sorted(sources)) if sources else None


class _AddressMergeMixin:
    """Shared helpers; expects ``dataset``, ``config`` and ``context``"""

    def is_address(self, primitive: OsmPrimitive) -> bool:
        prefix = self.config.address.address_prefix
        return any(key.startswith(prefix) for key in primitive.tags)

    def conflicting_keys(self, node: OsmNode, target: OsmPrimitive) -> List[str]:
        source_key = self.config.address.source_key
        return sorted(
            k for k, v in node.tags.items()
            if k != source_key and k in target.tags and target.tags[k] != v
        )

    def merge_node_command(self, node: OsmNode, target: OsmPrimitive, description: str) -> Optional[Command]:
        """
        Copy the node's tags onto ``target`` and delete the node

        Relation memberships of the node move to the target. Returns None
        when the two disagree on a tag value.
        """
        conflicts = self.conflicting_keys(node, target)
        if conflicts:
            logger.warning(
                f"Not merging {node.primitive_id} into {target.primitive_id}: "
                f"conflicting {', '.join(conflicts)}"
            )
            return None

        source_key = self.config.address.source_key
        tags: Dict[str, Optional[str]] = {
            k: v for k, v in node.tags.items()
            if k != source_key and k not in self.context.directive_keys
        }
        sources = merge_sources(target.get(source_key), node.get(source_key))
        if sources is not None:
            tags[source_key] = sources

        commands: List[Command] = []
        changed = {k: v for k, v in tags.items() if target.tags.get(k) != v}
        if changed:
            commands.append(ChangePropertiesCommand(self.dataset, target, changed))
        for referrer in self.dataset.referrers(node):
            if isinstance(referrer, OsmRelation):
                members = [
                    RelationMember(m.role, target) if m.member is node else m
                    for m in referrer.members
                ]
                commands.append(ChangeMembersCommand(self.dataset, referrer, members))
        commands.append(DeleteCommand(self.dataset, [node]))
        return SequenceCommand(description, commands)

    def area_nodes(self, area_primitive: OsmPrimitive) -> List[OsmNode]:
        """Live nodes strictly inside a building's area"""
        area = GeometryUtils.area_of(area_primitive)
        bbox = area_primitive.bbox()
        if area is None or bbox is None:
            return []
        return GeometryUtils.nodes_inside(area, self.dataset.search_nodes(bbox))


class AddressBuildingMerger(_AddressMergeMixin, ConflationCommand):
    """Merge the single address node inside a new building into it"""

    NAME = "address_building"
    DESCRIPTION = "Merge added buildings with existing address nodes"
    INTERESTED_TYPES = (PrimitiveType.WAY, PrimitiveType.RELATION)
    ALLOWS_UNDO = False
    MUST_NOT_PERSIST = False
    CONFLICTS = ("building_address",)

    @classmethod
    def key_for(cls, config: ConflationConfig) -> str:
        return config.building_key

    def _build(self, affected):
        if not self.config.address.enabled:
            return []
        commands: List[Command] = []
        claimed: Set[int] = set()
        for building in affected:
            if isinstance(building, OsmRelation) and not building.is_multipolygon:
                continue
            candidates = [n for n in self.area_nodes(building) if self.is_address(n)]
            if len(candidates) != 1:
                if len(candidates) > 1:
                    logger.debug(f"{building.primitive_id}: {len(candidates)} address nodes inside, skipping")
                continue
            node = candidates[0]
            if self.dataset.parent_ways(node):
                continue
            if id(node) in claimed:
                logger.debug(f"{node.primitive_id} already merged into another building")
                continue
            command = self.merge_node_command(
                node, building, f"Merge {node.primitive_id} into {building.primitive_id}"
            )
            if command is not None:
                claimed.add(id(node))
                commands.append(command)
        return commands


class BuildingAddressMerger(_AddressMergeMixin, ConflationCommand):
    """Merge a new address node into a matching address or its building"""

    NAME = "building_address"
    DESCRIPTION = "Merge added addresses with existing buildings"
    INTERESTED_TYPES = (PrimitiveType.NODE,)
    ALLOWS_UNDO = False
    MUST_NOT_PERSIST = False
    CONFLICTS = ("address_building",)

    @classmethod
    def key_for(cls, config: ConflationConfig) -> str:
        return config.address.housenumber_key

    def _build(self, affected):
        if not self.config.address.enabled:
            return []
        in_batch = {id(p) for p in affected}
        commands: List[Command] = []
        claimed: Set[int] = set()

        for node in affected:
            target = self._merge_target(node, in_batch)
            if target is None or id(target) in claimed:
                continue
            command = self.merge_node_command(
                node, target, f"Merge {node.primitive_id} into {target.primitive_id}"
            )
            if command is not None:
                claimed.add(id(target))
                commands.append(command)
        return commands

    def _merge_target(self, node: OsmNode, in_batch: Set[int]) -> Optional[OsmPrimitive]:
        settings = self.config.address
        bbox = BBox.around(node.lon, node.lat, settings.search_radius_deg)
        nearby: List[OsmPrimitive] = (
            self.dataset.search_ways(bbox)
            + self.dataset.search_relations(bbox)
            + self.dataset.search_nodes(bbox)
        )

        duplicates = [
            p for p in nearby
            if p is not node and id(p) not in in_batch
            and all(p.get(k) == node.get(k) for k in settings.match_keys if node.has_key(k))
            and p.has_key(settings.housenumber_key)
        ]
        if len(duplicates) == 1:
            return duplicates[0]

        buildings = [
            p for p in nearby
            if p.has_key(self.config.building_key) and p is not node
            and node in GeometryUtils.nodes_inside(GeometryUtils.area_of(p), [node])
        ]
        if len(buildings) == 1:
            building = buildings[0]
            inside = [
                n for n in self.area_nodes(building)
                if n.has_key(settings.housenumber_key)
            ]
            if len(inside) == 1 and inside[0] is node:
                return building
        return None
