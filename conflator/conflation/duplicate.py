"""
Duplicate node merging

A node tagged ``dupe=node 123`` is merged into node 123: every way and
relation referencing it is repointed to the target and the node is deleted.
"""

from typing import Dict, List, Optional

from loguru import logger

from ..commands import (
    ChangeMembersCommand,
    ChangeNodesCommand,
    ChangePropertiesCommand,
    ChangePropertyCommand,
    Command,
    DeleteCommand,
    SequenceCommand,
)
from ..config import ConflationConfig
from ..data import OsmNode, OsmRelation, OsmWay, PrimitiveType, RelationMember
from .base import ConflationCommand
from .directives import DirectiveCodec
from .errors import ConflationError


class DuplicateMergeCommand(ConflationCommand):
    """Merge nodes carrying a duplicate directive into their target"""

    NAME = "duplicate"
    DESCRIPTION = "Remove duplicated nodes"
    INTERESTED_TYPES = (PrimitiveType.NODE,)
    ALLOWS_UNDO = True
    MUST_NOT_PERSIST = True

    @classmethod
    def key_for(cls, config: ConflationConfig) -> str:
        return config.duplicate_key

    def _build(self, affected):
        key = self.directive_key()
        # source node -> node it was merged into, for chasing chains
        merged: Dict[int, OsmNode] = {}
        commands: List[Command] = []

        # Each merge is executed right away so that later merges see the
        # repointed ways; everything is rolled back before returning.
        try:
            for source in affected:
                if source.deleted:
                    continue
                target = self._resolve_target(source, key, merged)
                if target is None:
                    continue
                merge = self.merge_command(source, target)
                if not merge.execute():
                    logger.warning(f"Could not merge {source.primitive_id} into {target.primitive_id}")
                    continue
                commands.append(merge)
                merged[id(source)] = target
                logger.debug(f"Merging {source.primitive_id} into {target.primitive_id}")
        finally:
            self.rollback(commands)
        return commands

    def _resolve_target(self, source: OsmNode, key: str, merged: Dict[int, OsmNode]) -> Optional[OsmNode]:
        try:
            directive = DirectiveCodec.decode_duplicate(key, source.get(key))
            target = DirectiveCodec.resolve(self.dataset, directive.target, allow_deleted=True)
        except ConflationError as e:
            logger.warning(f"Skipping {source.primitive_id}: {e}")
            return None

        seen = {id(source)}
        while id(target) in merged:
            if id(target) in seen:
                logger.warning(f"Skipping {source.primitive_id}: duplicate chain loops back")
                return None
            seen.add(id(target))
            target = merged[id(target)]

        if target.deleted:
            logger.warning(f"Skipping {source.primitive_id}: {directive.target} is deleted")
            return None
        if target is source:
            logger.warning(f"Skipping {source.primitive_id}: duplicate of itself")
            return None
        return target

    def merge_command(self, source: OsmNode, target: OsmNode) -> Command:
        """Edits that fold ``source`` into ``target``"""
        key = self.directive_key()
        commands: List[Command] = []

        for referrer in self.dataset.referrers(source):
            if isinstance(referrer, OsmWay):
                nodes = self._replace_in_way(referrer.nodes, source, target)
                commands.append(ChangeNodesCommand(self.dataset, referrer, nodes))
            elif isinstance(referrer, OsmRelation):
                members = [
                    RelationMember(m.role, target) if m.member is source else m
                    for m in referrer.members
                ]
                commands.append(ChangeMembersCommand(self.dataset, referrer, members))

        carried = {
            k: v for k, v in source.tags.items()
            if k != key and k not in self.context.directive_keys and k not in target.tags
        }
        if carried:
            commands.append(ChangePropertiesCommand(self.dataset, target, carried))

        commands.append(ChangePropertyCommand(self.dataset, [source], key, None))
        commands.append(DeleteCommand(self.dataset, [source]))
        return SequenceCommand(f"Merge {source.primitive_id} into {target.primitive_id}", commands)

    @staticmethod
    def _replace_in_way(nodes: List[OsmNode], source: OsmNode, target: OsmNode) -> List[OsmNode]:
        """Swap source for target, collapsing repeats the swap creates"""
        result: List[OsmNode] = []
        for node in nodes:
            node = target if node is source else node
            if result and result[-1] is node:
                continue
            result.append(node)
        return result
