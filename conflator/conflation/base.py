"""
Conflation command base class

A conflation command is created per pass. It scans the affected
primitives it is interested in, builds at most one composite reversible
edit, and then drives that edit through execute / undo.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple

from loguru import logger

from ..commands import Command, SequenceCommand, UndoRedoHandler
from ..config import ConflationConfig, get_config
from ..data import Dataset, OsmPrimitive, PrimitiveType
from .decisions import AcceptAllDecisionProvider, DecisionSession
from .errors import CommandStateError, UndoNotAllowed


class CommandState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    BUILDING = "building"
    BUILT = "built"
    EXECUTED = "executed"
    UNDONE = "undone"


@dataclass
class ConflationContext:
    """Shared collaborators for the passes of one pipeline run"""
    config: ConflationConfig = field(default_factory=get_config)
    decisions: DecisionSession = field(
        default_factory=lambda: DecisionSession(AcceptAllDecisionProvider())
    )
    # every registered directive key (used to spot already-tagged primitives)
    directive_keys: FrozenSet[str] = frozenset()
    undo_handler: Optional[UndoRedoHandler] = None

    def __post_init__(self):
        if not self.directive_keys:
            self.directive_keys = frozenset({
                self.config.duplicate_key,
                self.config.connection_key,
                self.config.already_conflated_key,
            })

    def has_directive(self, primitive: OsmPrimitive) -> bool:
        return any(key in primitive.tags for key in self.directive_keys)


class ConflationCommand(ABC):
    """Base class for conflation passes"""

    NAME = "conflation"
    DESCRIPTION = "Conflate"
    INTERESTED_TYPES: Tuple[PrimitiveType, ...] = ()
    ALLOWS_UNDO = True
    MUST_NOT_PERSIST = False
    # names of passes that must not run in the same pipeline run as this one
    CONFLICTS: Tuple[str, ...] = ()

    def __init__(self, dataset: Dataset, context: Optional[ConflationContext] = None):
        self.dataset = dataset
        self.context = context or ConflationContext()
        self.config = self.context.config
        self.state = CommandState.IDLE
        self.affected: List[OsmPrimitive] = []
        self.command: Optional[Command] = None
        # individual edits in the composite (reported as the fix count)
        self.edit_count = 0

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    @classmethod
    @abstractmethod
    def key_for(cls, config: ConflationConfig) -> str:
        """Tag key this pass watches under ``config``"""

    def directive_key(self) -> str:
        return self.key_for(self.config)

    def interested_types(self) -> Tuple[PrimitiveType, ...]:
        return self.INTERESTED_TYPES

    def allows_undo(self) -> bool:
        return self.ALLOWS_UNDO

    def must_not_persist(self) -> bool:
        return self.MUST_NOT_PERSIST

    def conflicts_with(self) -> Tuple[str, ...]:
        return self.CONFLICTS

    @property
    def description(self) -> str:
        return self.DESCRIPTION

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def filter_affected(self, affected: Iterable[OsmPrimitive]) -> List[OsmPrimitive]:
        """Interested, live primitives carrying the key, in (type, id) order"""
        key = self.directive_key()
        types = set(self.interested_types())
        seen = {}
        for prim in affected:
            if prim.type in types and not prim.deleted and prim.has_key(key):
                seen.setdefault(id(prim), prim)
        return sorted(seen.values(), key=lambda p: p.sort_key())

    def build(self, affected: Iterable[OsmPrimitive]) -> Optional[Command]:
        """Scan ``affected`` and return the composite edit, or None"""
        if self.state is not CommandState.IDLE:
            raise CommandStateError(f"{self.NAME}: build() called in state {self.state.value}")
        self.state = CommandState.SCANNING
        self.affected = self.filter_affected(affected)
        logger.debug(f"{self.NAME}: {len(self.affected)} primitive(s) with '{self.directive_key()}'")
        self.state = CommandState.BUILDING
        commands = self._build(self.affected) if self.affected else []
        self.edit_count = len(commands)
        self.command = SequenceCommand.wrap_if_needed(self.description, commands)
        self.state = CommandState.BUILT
        if self.command is not None:
            logger.info(f"{self.NAME}: {self.edit_count} edit(s) prepared")
        return self.command

    @abstractmethod
    def _build(self, affected: List[OsmPrimitive]) -> List[Command]:
        """Edits for ``affected``, normally not yet executed"""

    def execute(self) -> bool:
        if self.state is not CommandState.BUILT:
            raise CommandStateError(f"{self.NAME}: execute() called in state {self.state.value}")
        ok = True
        if self.command is not None:
            ok = self.command.execute()
        self.state = CommandState.EXECUTED
        return ok

    def undo(self):
        if self.state is not CommandState.EXECUTED:
            raise CommandStateError(f"{self.NAME}: undo() called in state {self.state.value}")
        if not self.allows_undo():
            raise UndoNotAllowed(f"{self.NAME} edits cannot be undone as one step")
        if self.command is not None:
            self.command.undo()
        self.state = CommandState.UNDONE

    @staticmethod
    def rollback(commands: List[Command]):
        """Undo already executed edits in reverse order"""
        for command in reversed(commands):
            command.undo()
