"""
Registry of conflation passes

The pipeline runs the registered passes in table order. The registry is
also the one place that knows every directive key, which the detector and
the upload guard rely on.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple, Type

from ..config import ConflationConfig, get_config
from ..data import OsmPrimitive, PrimitiveType
from .already_conflated import AlreadyConflatedStripCommand
from .address_building import AddressBuildingMerger, BuildingAddressMerger
from .base import ConflationCommand
from .connection import ConnectionSpliceCommand
from .duplicate import DuplicateMergeCommand
from .missing_connection import MissingConnectionDetector
from .over_noded import OverNodedSimplifier


@dataclass(frozen=True)
class CommandDescriptor:
    """Static description of one pass"""
    name: str
    key: str
    interested_types: Tuple[PrimitiveType, ...]
    builder: Type[ConflationCommand]
    must_not_persist: bool
    allows_undo: bool

    @classmethod
    def of(cls, builder: Type[ConflationCommand], config: ConflationConfig) -> "CommandDescriptor":
        return cls(
            name=builder.NAME,
            key=builder.key_for(config),
            interested_types=tuple(builder.INTERESTED_TYPES),
            builder=builder,
            must_not_persist=builder.MUST_NOT_PERSIST,
            allows_undo=builder.ALLOWS_UNDO,
        )


# Detection first, then the consumers of the directives it writes
DEFAULT_COMMANDS: Tuple[Type[ConflationCommand], ...] = (
    MissingConnectionDetector,
    ConnectionSpliceCommand,
    DuplicateMergeCommand,
    AddressBuildingMerger,
    BuildingAddressMerger,
    OverNodedSimplifier,
    AlreadyConflatedStripCommand,
)


class ConflationRegistry:
    """Ordered table of pass descriptors"""

    def __init__(self, config: Optional[ConflationConfig] = None, commands: Iterable[Type[ConflationCommand]] = ()):
        self.config = config or get_config()
        self._descriptors: List[CommandDescriptor] = []
        for command in commands:
            self.register(command)

    def register(self, builder: Type[ConflationCommand], before: Optional[str] = None) -> CommandDescriptor:
        """Add a pass at the end, or in front of the pass named ``before``"""
        if any(d.name == builder.NAME for d in self._descriptors):
            raise ValueError(f"A pass named '{builder.NAME}' is already registered")
        descriptor = CommandDescriptor.of(builder, self.config)
        if before is None:
            self._descriptors.append(descriptor)
        else:
            names = [d.name for d in self._descriptors]
            if before not in names:
                raise ValueError(f"No registered pass named '{before}'")
            self._descriptors.insert(names.index(before), descriptor)
        return descriptor

    def unregister(self, name: str) -> bool:
        before = len(self._descriptors)
        self._descriptors = [d for d in self._descriptors if d.name != name]
        return len(self._descriptors) != before

    def descriptors(self) -> List[CommandDescriptor]:
        return list(self._descriptors)

    def get(self, name: str) -> Optional[CommandDescriptor]:
        for descriptor in self._descriptors:
            if descriptor.name == name:
                return descriptor
        return None

    def directive_keys(self) -> Set[str]:
        """Every key watched by a registered pass"""
        return {d.key for d in self._descriptors}

    def non_publishable_keys(self) -> Set[str]:
        """Keys that must never reach the shared map"""
        return {d.key for d in self._descriptors if d.must_not_persist}

    def has_directive(self, primitive: OsmPrimitive) -> bool:
        return primitive.has_key(*self.non_publishable_keys())

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self):
        return iter(self.descriptors())


def default_registry(config: Optional[ConflationConfig] = None) -> ConflationRegistry:
    """Registry holding the built-in passes in their standard order"""
    return ConflationRegistry(config, DEFAULT_COMMANDS)
