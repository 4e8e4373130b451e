"""
Already-conflated marker removal
"""

from ..commands import ChangePropertyCommand
from ..config import ConflationConfig
from ..data import PrimitiveType
from .base import ConflationCommand


class AlreadyConflatedStripCommand(ConflationCommand):
    """Remove the upstream "already conflated" marker key"""

    NAME = "already_conflated"
    DESCRIPTION = "Remove key for already conflated data"
    INTERESTED_TYPES = (PrimitiveType.NODE, PrimitiveType.WAY, PrimitiveType.RELATION)
    ALLOWS_UNDO = True
    MUST_NOT_PERSIST = True

    @classmethod
    def key_for(cls, config: ConflationConfig) -> str:
        return config.already_conflated_key

    def _build(self, affected):
        key = self.directive_key()
        return [ChangePropertyCommand(self.dataset, [prim], key, None) for prim in affected]
