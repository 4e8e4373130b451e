"""
Directive codec

Marker-tag values are lists of primitive references such as
``node 123`` or ``way 1,node 2,node 3``. The short forms ``n123`` and
``w/1`` are accepted when decoding; encoding always uses ``<type> <id>``.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from ..data import (
    Dataset,
    OsmNode,
    OsmPrimitive,
    OsmWay,
    PrimitiveId,
    PrimitiveType,
)
from .errors import MalformedDirective, UnresolvedReference

_REFERENCE = re.compile(r"^(n|node|w|way|r|rel|relation)[ /]?(-?\d+)$")

_TYPES = {
    "n": PrimitiveType.NODE,
    "node": PrimitiveType.NODE,
    "w": PrimitiveType.WAY,
    "way": PrimitiveType.WAY,
    "r": PrimitiveType.RELATION,
    "rel": PrimitiveType.RELATION,
    "relation": PrimitiveType.RELATION,
}


@dataclass(frozen=True)
class Duplicate:
    """Merge the carrier into ``target``"""
    target: PrimitiveId


@dataclass(frozen=True)
class Connection:
    """Splice the carrier into ``way`` between ``first`` and ``second``"""
    way: PrimitiveId
    first: PrimitiveId
    second: PrimitiveId


@dataclass(frozen=True)
class AlreadyConflated:
    """Presence of ``key`` means the feature was conflated upstream"""
    key: str


class DirectiveCodec:
    """Decode / encode / resolve directive tag values"""

    @staticmethod
    def decode_references(key: str, value: Optional[str]) -> List[PrimitiveId]:
        if value is None or not value.strip():
            raise MalformedDirective(key, value or "", "empty value")
        refs = []
        for part in value.split(","):
            match = _REFERENCE.match(part.strip().lower())
            if not match:
                raise MalformedDirective(key, value, f"bad reference {part.strip()!r}")
            refs.append(PrimitiveId(_TYPES[match.group(1)], int(match.group(2))))
        return refs

    @staticmethod
    def decode_duplicate(key: str, value: Optional[str]) -> Duplicate:
        refs = DirectiveCodec.decode_references(key, value)
        if len(refs) != 1:
            raise MalformedDirective(key, value, f"expected one node reference, got {len(refs)}")
        if refs[0].type is not PrimitiveType.NODE:
            raise MalformedDirective(key, value, "duplicate target must be a node")
        return Duplicate(refs[0])

    @staticmethod
    def decode_connection(key: str, value: Optional[str]) -> List[Connection]:
        """One Connection per (way, node, node) triple in the value"""
        refs = DirectiveCodec.decode_references(key, value)
        if len(refs) % 3 != 0:
            raise MalformedDirective(key, value, "expected way,node,node triples")
        connections = []
        for i in range(0, len(refs), 3):
            way, first, second = refs[i:i + 3]
            if (
                way.type is not PrimitiveType.WAY
                or first.type is not PrimitiveType.NODE
                or second.type is not PrimitiveType.NODE
            ):
                raise MalformedDirective(key, value, f"triple {i // 3} is not way,node,node")
            connections.append(Connection(way, first, second))
        return connections

    @staticmethod
    def decode_already_conflated(key: str, primitive: OsmPrimitive) -> Optional[AlreadyConflated]:
        return AlreadyConflated(key) if primitive.has_key(key) else None

    @staticmethod
    def encode_duplicate(target: OsmNode) -> str:
        return str(target.primitive_id)

    @staticmethod
    def encode_connection(way: OsmWay, first: OsmNode, second: OsmNode) -> str:
        return ",".join(str(p.primitive_id) for p in (way, first, second))

    @staticmethod
    def resolve(dataset: Dataset, ref: PrimitiveId, allow_deleted: bool = False) -> OsmPrimitive:
        primitive = dataset.get(ref)
        if primitive is None:
            raise UnresolvedReference(str(ref))
        if primitive.deleted and not allow_deleted:
            raise UnresolvedReference(str(ref), "deleted")
        return primitive
