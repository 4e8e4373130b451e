"""
Conflation passes

- Directives: DirectiveCodec for dupe / conn / already-conflated tags
- Base: ConflationCommand lifecycle, registry of passes
- Passes: detection, splice, duplicate merge, address merging,
  simplification, marker removal
- MergeDuplicateWaysCommand: folds overlapping ways into one
- Pipeline: runs the registered passes over an affected batch
- UploadGuard: refuses datasets with leftover directive keys
"""

from .errors import (
    CommandStateError,
    ConflationError,
    MalformedDirective,
    UndoNotAllowed,
    UnresolvedReference,
    UploadBlocked,
)
from .directives import AlreadyConflated, Connection, DirectiveCodec, Duplicate
from .decisions import (
    AcceptAllDecisionProvider,
    ConsoleDecisionProvider,
    Decision,
    DecisionProvider,
    DecisionResponse,
    DecisionSession,
    ScriptedDecisionProvider,
)
from .base import CommandState, ConflationCommand, ConflationContext
from .duplicate import DuplicateMergeCommand
from .duplicate_ways import MergeDuplicateWaysCommand
from .connection import ConnectionSpliceCommand
from .already_conflated import AlreadyConflatedStripCommand
from .missing_connection import MissingConnectionDetector, Proposal
from .over_noded import OverNodedSimplifier
from .address_building import AddressBuildingMerger, BuildingAddressMerger, merge_sources
from .registry import CommandDescriptor, ConflationRegistry, DEFAULT_COMMANDS, default_registry
from .upload import UploadGuard
from .pipeline import ConflationPipeline, ConflationResult

__all__ = [
    "CommandStateError",
    "ConflationError",
    "MalformedDirective",
    "UndoNotAllowed",
    "UnresolvedReference",
    "UploadBlocked",
    "AlreadyConflated",
    "Connection",
    "DirectiveCodec",
    "Duplicate",
    "AcceptAllDecisionProvider",
    "ConsoleDecisionProvider",
    "Decision",
    "DecisionProvider",
    "DecisionResponse",
    "DecisionSession",
    "ScriptedDecisionProvider",
    "CommandState",
    "ConflationCommand",
    "ConflationContext",
    "DuplicateMergeCommand",
    "MergeDuplicateWaysCommand",
    "ConnectionSpliceCommand",
    "AlreadyConflatedStripCommand",
    "MissingConnectionDetector",
    "Proposal",
    "OverNodedSimplifier",
    "AddressBuildingMerger",
    "BuildingAddressMerger",
    "merge_sources",
    "CommandDescriptor",
    "ConflationRegistry",
    "DEFAULT_COMMANDS",
    "default_registry",
    "UploadGuard",
    "ConflationPipeline",
    "ConflationResult",
]
