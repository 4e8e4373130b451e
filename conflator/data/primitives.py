"""
Map primitive models

Data classes for representing nodes, ways and relations
"""

import math
from enum import Enum
from typing import List, Dict, Optional, NamedTuple
from dataclasses import dataclass, field


class PrimitiveType(Enum):
    """Kind of map primitive"""
    NODE = "node"
    WAY = "way"
    RELATION = "relation"

    @property
    def order(self) -> int:
        return _TYPE_ORDER[self]


_TYPE_ORDER = {PrimitiveType.NODE: 0, PrimitiveType.WAY: 1, PrimitiveType.RELATION: 2}


class PrimitiveId(NamedTuple):
    """Typed primitive reference, e.g. ``node 12``"""
    type: PrimitiveType
    id: int

    def __str__(self) -> str:
        return f"{self.type.value} {self.id}"


@dataclass(frozen=True)
class BBox:
    """Axis-aligned bounding box in degrees"""
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def around(cls, lon: float, lat: float, radius_deg: float = 0.0) -> "BBox":
        return cls(lon - radius_deg, lat - radius_deg, lon + radius_deg, lat + radius_deg)

    @classmethod
    def from_coords(cls, coords: List[List[float]]) -> Optional["BBox"]:
        """Bounding box of [lon, lat] pairs"""
        if not coords:
            return None
        lons = [c[0] for c in coords]
        lats = [c[1] for c in coords]
        return cls(min(lons), min(lats), max(lons), max(lats))

    def expanded(self, degrees: float) -> "BBox":
        return BBox(
            self.min_lon - degrees,
            self.min_lat - degrees,
            self.max_lon + degrees,
            self.max_lat + degrees,
        )

    def expanded_m(self, meters: float) -> "BBox":
        """Grow the box by roughly ``meters`` on every side"""
        m_per_deg_lat = 111000
        mid_lat = (self.min_lat + self.max_lat) / 2
        m_per_deg_lon = max(111000 * math.cos(math.radians(mid_lat)), 1e-6)
        dlat = meters / m_per_deg_lat
        dlon = meters / m_per_deg_lon
        return BBox(self.min_lon - dlon, self.min_lat - dlat, self.max_lon + dlon, self.max_lat + dlat)

    def intersects(self, other: "BBox") -> bool:
        return not (
            other.min_lon > self.max_lon
            or other.max_lon < self.min_lon
            or other.min_lat > self.max_lat
            or other.max_lat < self.min_lat
        )

    def contains(self, lon: float, lat: float) -> bool:
        return self.min_lon <= lon <= self.max_lon and self.min_lat <= lat <= self.max_lat


@dataclass(eq=False)
class OsmPrimitive:
    """Common base of nodes, ways and relations"""
    id: int
    tags: Dict[str, str] = field(default_factory=dict)
    deleted: bool = False

    TYPE = None  # set by subclasses

    @property
    def type(self) -> PrimitiveType:
        return self.TYPE

    @property
    def primitive_id(self) -> PrimitiveId:
        return PrimitiveId(self.TYPE, self.id)

    @property
    def is_new(self) -> bool:
        """Locally created, never published"""
        return self.id <= 0

    def has_key(self, *keys: str) -> bool:
        return any(key in self.tags for key in keys)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.tags.get(key, default)

    def sort_key(self):
        return (self.TYPE.order, self.id)

    def bbox(self) -> Optional[BBox]:
        raise NotImplementedError

    def __repr__(self) -> str:
        flag = " deleted" if self.deleted else ""
        return f"<{self.primitive_id}{flag}>"


@dataclass(eq=False, repr=False)
class OsmNode(OsmPrimitive):
    """Represents a node (point)"""
    lat: float = 0.0
    lon: float = 0.0

    TYPE = PrimitiveType.NODE

    @property
    def coord(self) -> List[float]:
        """Coordinate as [lon, lat]"""
        return [self.lon, self.lat]

    def bbox(self) -> BBox:
        return BBox(self.lon, self.lat, self.lon, self.lat)


@dataclass(eq=False, repr=False)
class OsmWay(OsmPrimitive):
    """Represents a way (line or polygon)"""
    nodes: List[OsmNode] = field(default_factory=list)

    TYPE = PrimitiveType.WAY

    @property
    def is_closed(self) -> bool:
        return len(self.nodes) >= 4 and self.nodes[0] is self.nodes[-1]

    @property
    def first_node(self) -> Optional[OsmNode]:
        return self.nodes[0] if self.nodes else None

    @property
    def last_node(self) -> Optional[OsmNode]:
        return self.nodes[-1] if self.nodes else None

    def contains_node(self, node: OsmNode) -> bool:
        return any(n is node for n in self.nodes)

    def index_of(self, node: OsmNode) -> int:
        """First index of ``node`` in the way, -1 if absent"""
        for i, n in enumerate(self.nodes):
            if n is node:
                return i
        return -1

    def get_coordinates(self) -> List[List[float]]:
        """Get coordinates as [lon, lat] list"""
        return [[n.lon, n.lat] for n in self.nodes]

    def bbox(self) -> Optional[BBox]:
        return BBox.from_coords(self.get_coordinates())


@dataclass(frozen=True)
class RelationMember:
    """A role-tagged relation member"""
    role: str
    member: OsmPrimitive


@dataclass(eq=False, repr=False)
class OsmRelation(OsmPrimitive):
    """Represents a relation (ordered member list)"""
    members: List[RelationMember] = field(default_factory=list)

    TYPE = PrimitiveType.RELATION

    @property
    def is_multipolygon(self) -> bool:
        return self.tags.get("type") == "multipolygon"

    def member_primitives(self) -> List[OsmPrimitive]:
        return [m.member for m in self.members]

    def bbox(self) -> Optional[BBox]:
        coords = []
        for member in self.members:
            # nested relations are not expanded
            if isinstance(member.member, OsmNode):
                coords.append(member.member.coord)
            elif isinstance(member.member, OsmWay):
                coords.extend(member.member.get_coordinates())
        return BBox.from_coords(coords)
