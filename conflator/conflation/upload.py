"""
Upload guard

Blocks publishing while any primitive still carries a directive key that
a registered pass declares as non-publishable.
"""

from typing import List, Optional

from loguru import logger

from ..commands import ChangePropertyCommand, Command, SequenceCommand
from ..data import Dataset
from ..models import LeftoverDirective
from .errors import UploadBlocked
from .registry import ConflationRegistry, default_registry


class UploadGuard:
    """Checks a dataset for leftover directive tags"""

    def __init__(self, registry: Optional[ConflationRegistry] = None):
        self.registry = registry or default_registry()

    def find_leftovers(self, dataset: Dataset) -> List[LeftoverDirective]:
        keys = self.registry.non_publishable_keys()
        leftovers = []
        for primitive in dataset.all_primitives():
            found = sorted(k for k in keys if k in primitive.tags)
            if found:
                leftovers.append(LeftoverDirective(primitive=str(primitive.primitive_id), keys=found))
        return leftovers

    def check(self, dataset: Dataset) -> bool:
        """Raise UploadBlocked if anything non-publishable is left"""
        leftovers = self.find_leftovers(dataset)
        if leftovers:
            for leftover in leftovers:
                logger.debug(f"{leftover.primitive} still has {', '.join(leftover.keys)}")
            raise UploadBlocked([leftover.primitive for leftover in leftovers])
        logger.info(f"No conflation keys left in '{dataset.name}'")
        return True

    def build_cleanup_command(self, dataset: Dataset) -> Optional[Command]:
        """One reversible edit removing every leftover key"""
        commands = []
        for key in sorted(self.registry.non_publishable_keys()):
            carriers = [p for p in dataset.all_primitives() if key in p.tags]
            if carriers:
                commands.append(ChangePropertyCommand(dataset, carriers, key, None))
        return SequenceCommand.wrap_if_needed("Remove leftover conflation keys", commands)
