"""
Dataset

Primitive collection with referrer tracking and a bounding-box index.
Structural edits go through the ``set_*`` / ``put_tag`` mutators, which are
called by commands only.
"""

from typing import Dict, Iterable, List, Optional, Union
from collections import defaultdict

from loguru import logger
from shapely.geometry import box, Point, LineString
from shapely.strtree import STRtree

from .primitives import (
    BBox,
    OsmNode,
    OsmPrimitive,
    OsmRelation,
    OsmWay,
    PrimitiveId,
    PrimitiveType,
    RelationMember,
)


def _bbox_geometry(bbox: BBox):
    """Shapely geometry covering ``bbox``, degenerate boxes included"""
    if bbox.min_lon == bbox.max_lon and bbox.min_lat == bbox.max_lat:
        return Point(bbox.min_lon, bbox.min_lat)
    if bbox.min_lon == bbox.max_lon or bbox.min_lat == bbox.max_lat:
        return LineString([(bbox.min_lon, bbox.min_lat), (bbox.max_lon, bbox.max_lat)])
    return box(bbox.min_lon, bbox.min_lat, bbox.max_lon, bbox.max_lat)


class _SpatialIndex:
    """STRtree over one kind of primitive, rebuilt lazily when dirty"""

    def __init__(self):
        self.dirty = True
        self._tree: Optional[STRtree] = None
        self._items: List[OsmPrimitive] = []

    def rebuild(self, primitives: Iterable[OsmPrimitive]):
        geoms = []
        items = []
        for prim in primitives:
            bbox = prim.bbox()
            if bbox is None:
                continue
            geoms.append(_bbox_geometry(bbox))
            items.append(prim)
        self._tree = STRtree(geoms) if geoms else None
        self._items = items
        self.dirty = False

    def query(self, bbox: BBox) -> List[OsmPrimitive]:
        if self._tree is None:
            return []
        query_geom = _bbox_geometry(bbox)
        # envelope overlap; `intersects` keeps boundary touches
        indices = self._tree.query(query_geom, predicate="intersects")
        found = [self._items[int(i)] for i in indices]
        return sorted((p for p in found if not p.deleted), key=lambda p: p.sort_key())


class Dataset:
    """
    Collection of map primitives

    Keeps way->node and relation->member back references so that
    referrers can be looked up without scanning every way.
    """

    def __init__(self, name: str = "dataset"):
        self.name = name
        self._primitives: Dict[PrimitiveId, OsmPrimitive] = {}
        self._referrers: Dict[int, List[OsmPrimitive]] = defaultdict(list)
        self._indexes = {
            PrimitiveType.NODE: _SpatialIndex(),
            PrimitiveType.WAY: _SpatialIndex(),
            PrimitiveType.RELATION: _SpatialIndex(),
        }
        self._last_new_id = 0

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def add(self, primitive: OsmPrimitive) -> OsmPrimitive:
        """Add a primitive; its children must already be in the dataset"""
        pid = primitive.primitive_id
        if pid in self._primitives:
            raise ValueError(f"Duplicate primitive {pid} in {self.name}")
        self._primitives[pid] = primitive
        if primitive.id <= self._last_new_id:
            self._last_new_id = primitive.id
        for child in self._children(primitive):
            self._referrers[id(child)].append(primitive)
        self._mark_dirty(primitive)
        return primitive

    def next_new_id(self) -> int:
        """Next free id for a locally created primitive"""
        self._last_new_id -= 1
        return self._last_new_id

    def get(self, pid: PrimitiveId) -> Optional[OsmPrimitive]:
        return self._primitives.get(pid)

    def node(self, node_id: int) -> Optional[OsmNode]:
        return self._primitives.get(PrimitiveId(PrimitiveType.NODE, node_id))

    def way(self, way_id: int) -> Optional[OsmWay]:
        return self._primitives.get(PrimitiveId(PrimitiveType.WAY, way_id))

    def relation(self, relation_id: int) -> Optional[OsmRelation]:
        return self._primitives.get(PrimitiveId(PrimitiveType.RELATION, relation_id))

    def __contains__(self, primitive: OsmPrimitive) -> bool:
        return self._primitives.get(primitive.primitive_id) is primitive

    def __len__(self) -> int:
        return len(self._primitives)

    def all_primitives(self, include_deleted: bool = False) -> List[OsmPrimitive]:
        prims = sorted(self._primitives.values(), key=lambda p: p.sort_key())
        if include_deleted:
            return prims
        return [p for p in prims if not p.deleted]

    @property
    def nodes(self) -> List[OsmNode]:
        return [p for p in self.all_primitives() if isinstance(p, OsmNode)]

    @property
    def ways(self) -> List[OsmWay]:
        return [p for p in self.all_primitives() if isinstance(p, OsmWay)]

    @property
    def relations(self) -> List[OsmRelation]:
        return [p for p in self.all_primitives() if isinstance(p, OsmRelation)]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def search_nodes(self, bbox: BBox) -> List[OsmNode]:
        return self._search(PrimitiveType.NODE, bbox)

    def search_ways(self, bbox: BBox) -> List[OsmWay]:
        return self._search(PrimitiveType.WAY, bbox)

    def search_relations(self, bbox: BBox) -> List[OsmRelation]:
        return self._search(PrimitiveType.RELATION, bbox)

    def _search(self, ptype: PrimitiveType, bbox: BBox) -> List[OsmPrimitive]:
        index = self._indexes[ptype]
        if index.dirty:
            index.rebuild(
                p for p in self._primitives.values() if p.type is ptype and not p.deleted
            )
        return index.query(bbox)

    def referrers(self, primitive: OsmPrimitive, include_deleted: bool = False) -> List[OsmPrimitive]:
        """Ways and relations that reference ``primitive``"""
        refs = []
        seen = set()
        for ref in self._referrers.get(id(primitive), []):
            if id(ref) in seen or (ref.deleted and not include_deleted):
                continue
            seen.add(id(ref))
            refs.append(ref)
        return sorted(refs, key=lambda p: p.sort_key())

    def parent_ways(self, node: OsmNode) -> List[OsmWay]:
        return [r for r in self.referrers(node) if isinstance(r, OsmWay)]

    # ------------------------------------------------------------------
    # Mutators (commands only)
    # ------------------------------------------------------------------

    def put_tag(self, primitive: OsmPrimitive, key: str, value: Optional[str]):
        if value is None or value == "":
            primitive.tags.pop(key, None)
        else:
            primitive.tags[key] = value

    def set_tags(self, primitive: OsmPrimitive, tags: Dict[str, str]):
        primitive.tags = dict(tags)

    def set_coord(self, node: OsmNode, lat: float, lon: float):
        node.lat = lat
        node.lon = lon
        self._mark_dirty(node)
        for ref in self._referrers.get(id(node), []):
            self._mark_dirty(ref)

    def set_way_nodes(self, way: OsmWay, nodes: List[OsmNode]):
        self._unlink(way)
        way.nodes = list(nodes)
        self._link(way)
        self._mark_dirty(way)

    def set_relation_members(self, relation: OsmRelation, members: List[RelationMember]):
        self._unlink(relation)
        relation.members = list(members)
        self._link(relation)
        self._mark_dirty(relation)

    def set_deleted(self, primitive: OsmPrimitive, deleted: bool):
        if primitive.deleted == deleted:
            return
        primitive.deleted = deleted
        logger.debug(f"{'Deleted' if deleted else 'Restored'} {primitive.primitive_id}")
        self._mark_dirty(primitive)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _children(primitive: OsmPrimitive) -> List[OsmPrimitive]:
        if isinstance(primitive, OsmWay):
            return list(primitive.nodes)
        if isinstance(primitive, OsmRelation):
            return primitive.member_primitives()
        return []

    def _unlink(self, parent: OsmPrimitive):
        for child in self._children(parent):
            refs = self._referrers.get(id(child))
            if refs and parent in refs:
                refs.remove(parent)

    def _link(self, parent: OsmPrimitive):
        for child in self._children(parent):
            self._referrers[id(child)].append(parent)

    def _mark_dirty(self, primitive: Union[OsmPrimitive, None]):
        if primitive is None:
            return
        self._indexes[primitive.type].dirty = True
        if isinstance(primitive, OsmNode):
            # way / relation envelopes depend on node positions
            self._indexes[PrimitiveType.WAY].dirty = True
            self._indexes[PrimitiveType.RELATION].dirty = True
        elif isinstance(primitive, OsmWay):
            self._indexes[PrimitiveType.RELATION].dirty = True
