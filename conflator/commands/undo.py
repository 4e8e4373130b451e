"""
Undo / redo stack
"""

from typing import List, Optional

from loguru import logger

from .base import Command


class UndoRedoHandler:
    """Linear undo history of executed commands"""

    def __init__(self):
        self._undo: List[Command] = []
        self._redo: List[Command] = []

    @property
    def undo_commands(self) -> List[Command]:
        return list(self._undo)

    @property
    def redo_commands(self) -> List[Command]:
        return list(self._redo)

    def add(self, command: Command) -> bool:
        """Execute ``command`` (if needed) and push it; clears the redo list"""
        if not command.execute():
            logger.warning(f"Not recording failed command '{command.description}'")
            return False
        self._undo.append(command)
        self._redo.clear()
        return True

    def undo(self, steps: int = 1) -> Optional[Command]:
        last = None
        for _ in range(steps):
            if not self._undo:
                break
            last = self._undo.pop()
            last.undo()
            self._redo.append(last)
            logger.debug(f"Undid '{last.description}'")
        return last

    def redo(self, steps: int = 1) -> Optional[Command]:
        last = None
        for _ in range(steps):
            if not self._redo:
                break
            last = self._redo.pop()
            if last.execute():
                self._undo.append(last)
                logger.debug(f"Redid '{last.description}'")
        return last

    def clear(self):
        self._undo.clear()
        self._redo.clear()
