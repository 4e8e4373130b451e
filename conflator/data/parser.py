"""
Dataset document parser

Parses Overpass-style JSON documents into a Dataset and writes them back
"""

import json
from typing import Dict, Any, List, Union

from loguru import logger
from pydantic import ValidationError

from ..models import DatasetDocument, ElementModel, MemberModel
from .dataset import Dataset
from .primitives import (
    OsmNode,
    OsmPrimitive,
    OsmRelation,
    OsmWay,
    PrimitiveId,
    PrimitiveType,
    RelationMember,
)


class DatasetParser:
    """Converts between DatasetDocument and Dataset"""

    @staticmethod
    def parse(data: Union[Dict[str, Any], DatasetDocument], name: str = "dataset") -> Dataset:
        """
        Parse a document into a Dataset

        Nodes are added first, then ways, then relations, so that references
        resolve regardless of element order in the document. Way node
        references that cannot be resolved are dropped with a warning.

        Args:
            data: JSON dict or validated DatasetDocument

        Returns:
            Dataset with every element of the document
        """
        document = data if isinstance(data, DatasetDocument) else DatasetDocument.model_validate(data)
        dataset = Dataset(name)

        by_type: Dict[str, List[ElementModel]] = {"node": [], "way": [], "relation": []}
        for element in document.elements:
            by_type[element.type].append(element)

        for element in by_type["node"]:
            if element.lat is None or element.lon is None:
                logger.warning(f"Skipping node {element.id} without coordinates")
                continue
            dataset.add(OsmNode(
                id=element.id,
                lat=element.lat,
                lon=element.lon,
                tags=dict(element.tags),
                deleted=element.deleted,
            ))

        for element in by_type["way"]:
            way_nodes = []
            for node_id in element.nodes or []:
                node = dataset.node(node_id)
                if node is None:
                    logger.warning(f"Way {element.id} references missing node {node_id}")
                    continue
                way_nodes.append(node)
            dataset.add(OsmWay(
                id=element.id,
                nodes=way_nodes,
                tags=dict(element.tags),
                deleted=element.deleted,
            ))

        # relations may reference each other, so resolve members in a second step
        relations = []
        for element in by_type["relation"]:
            relation = OsmRelation(id=element.id, tags=dict(element.tags), deleted=element.deleted)
            relations.append((relation, element))
        pending = {rel.primitive_id: rel for rel, _ in relations}
        for relation, element in relations:
            members = []
            for member in element.members or []:
                pid = PrimitiveId(PrimitiveType(member.type), member.ref)
                target = dataset.get(pid) or pending.get(pid)
                if target is None:
                    logger.warning(f"Relation {element.id} references missing {pid}")
                    continue
                members.append(RelationMember(member.role, target))
            relation.members = members
        for relation, _ in relations:
            dataset.add(relation)

        logger.info(
            f"Parsed {len(by_type['node'])} nodes, {len(by_type['way'])} ways, "
            f"{len(by_type['relation'])} relations into '{name}'"
        )
        return dataset

    @staticmethod
    def to_element(primitive: OsmPrimitive) -> ElementModel:
        if isinstance(primitive, OsmNode):
            return ElementModel(
                type="node", id=primitive.id, lat=primitive.lat, lon=primitive.lon,
                tags=dict(primitive.tags), deleted=primitive.deleted,
            )
        if isinstance(primitive, OsmWay):
            return ElementModel(
                type="way", id=primitive.id, nodes=[n.id for n in primitive.nodes],
                tags=dict(primitive.tags), deleted=primitive.deleted,
            )
        return ElementModel(
            type="relation",
            id=primitive.id,
            members=[
                MemberModel(type=m.member.type.value, ref=m.member.id, role=m.role)
                for m in primitive.members
            ],
            tags=dict(primitive.tags),
            deleted=primitive.deleted,
        )

    @staticmethod
    def dump(dataset: Dataset, include_deleted: bool = False) -> DatasetDocument:
        """Serialize a Dataset; deleted primitives are left out unless requested"""
        elements = [
            DatasetParser.to_element(p)
            for p in dataset.all_primitives(include_deleted=include_deleted)
        ]
        return DatasetDocument(elements=elements)


def load_dataset(path: str) -> Dataset:
    """Load a dataset document from disk"""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    try:
        return DatasetParser.parse(data, name=path)
    except ValidationError as e:
        raise ValueError(f"Invalid dataset document {path}: {e}") from e


def save_dataset(dataset: Dataset, path: str, include_deleted: bool = False):
    """Write a dataset document to disk"""
    document = DatasetParser.dump(dataset, include_deleted=include_deleted)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(document.model_dump_json(indent=2, exclude_none=True))
    logger.info(f"Saved {len(document.elements)} elements to {path}")
