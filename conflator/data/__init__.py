"""
Map data model

- Primitives: OsmNode, OsmWay, OsmRelation and typed ids
- Dataset: primitive collection with referrers and bbox search
- Parser: JSON document <-> Dataset
"""

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
from .dataset import Dataset
from .parser import DatasetParser, load_dataset, save_dataset

__all__ = [
    "BBox",
    "OsmNode",
    "OsmPrimitive",
    "OsmRelation",
    "OsmWay",
    "PrimitiveId",
    "PrimitiveType",
    "RelationMember",
    "Dataset",
    "DatasetParser",
    "load_dataset",
    "save_dataset",
]
