"""
Pydantic models for the conflation data interchange format
Elements follow the Overpass JSON layout ({"elements": [...]})
"""

from datetime import datetime
from typing import List, Optional, Dict, Literal
from pydantic import BaseModel, Field


# ============================================================
# Dataset document
# ============================================================

class MemberModel(BaseModel):
    type: Literal["node", "way", "relation"]
    ref: int
    role: str = ""


class ElementModel(BaseModel):
    type: Literal["node", "way", "relation"]
    id: int
    lat: Optional[float] = None
    lon: Optional[float] = None
    nodes: Optional[List[int]] = None  # way node references
    members: Optional[List[MemberModel]] = None  # relation members
    tags: Dict[str, str] = Field(default_factory=dict)
    deleted: bool = False


class DatasetDocument(BaseModel):
    version: float = 0.6
    generator: str = "conflator"
    elements: List[ElementModel] = Field(default_factory=list)


# ============================================================
# Conflation report
# ============================================================

class PassSummary(BaseModel):
    name: str
    key: str
    considered: int
    edits: int
    allows_undo: bool
    skipped_conflict: bool = False


class LeftoverDirective(BaseModel):
    primitive: str  # e.g. "node -3"
    keys: List[str]


class ConflationReport(BaseModel):
    generated_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    affected: int
    passes: List[PassSummary] = Field(default_factory=list)
    fixes: int = 0
    cancelled: bool = False
    leftovers: List[LeftoverDirective] = Field(default_factory=list)
