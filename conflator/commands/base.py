"""
Reversible command base classes
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from loguru import logger

from ..data import Dataset, OsmPrimitive


class Command(ABC):
    """
    A reversible edit of a Dataset

    Subclasses implement ``_execute`` / ``_undo``. Executing an already
    executed command, or undoing one that is not executed, does nothing.
    """

    def __init__(self, dataset: Dataset):
        self.dataset = dataset
        self.executed = False

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @abstractmethod
    def _execute(self) -> bool:
        ...

    @abstractmethod
    def _undo(self):
        ...

    def participating_primitives(self) -> List[OsmPrimitive]:
        return []

    def execute(self) -> bool:
        if self.executed:
            return True
        ok = self._execute()
        self.executed = bool(ok)
        return self.executed

    def undo(self):
        if not self.executed:
            return
        self._undo()
        self.executed = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__}: {self.description}>"


class SequenceCommand(Command):
    """Runs child commands as a single undo step"""

    def __init__(self, description: str, commands: Iterable[Command], dataset: Optional[Dataset] = None):
        commands = list(commands)
        if dataset is None:
            if not commands:
                raise ValueError("SequenceCommand needs a dataset or at least one child command")
            dataset = commands[0].dataset
        super().__init__(dataset)
        self._description = description
        self.commands: List[Command] = commands

    @property
    def description(self) -> str:
        return self._description

    @staticmethod
    def wrap_if_needed(description: str, commands: Iterable[Command]) -> Optional[Command]:
        """One command is returned as is, several are wrapped, none gives None"""
        commands = list(commands)
        if not commands:
            return None
        if len(commands) == 1:
            return commands[0]
        return SequenceCommand(description, commands)

    def _execute(self) -> bool:
        done = []
        for command in self.commands:
            was_executed = command.executed
            if not command.execute():
                logger.warning(f"'{command.description}' failed, rolling back '{self.description}'")
                for previous in reversed(done):
                    previous.undo()
                return False
            if not was_executed:
                done.append(command)
        return True

    def _undo(self):
        for command in reversed(self.commands):
            command.undo()

    def participating_primitives(self) -> List[OsmPrimitive]:
        seen = {}
        for command in self.commands:
            for prim in command.participating_primitives():
                seen.setdefault(id(prim), prim)
        return list(seen.values())

    def __len__(self) -> int:
        return len(self.commands)
