"""
Reversible edit commands

- Base: Command, SequenceCommand
- Primitive edits: tags, way nodes, relation members, moves, deletion,
  node insertion into ways
- UndoRedoHandler: undo history
"""

from .base import Command, SequenceCommand
from .primitive import (
    AddNodeToWayCommand,
    ChangeMembersCommand,
    ChangeNodesCommand,
    ChangePropertiesCommand,
    ChangePropertyCommand,
    DeleteCommand,
    MoveNodeCommand,
)
from .undo import UndoRedoHandler

__all__ = [
    "Command",
    "SequenceCommand",
    "AddNodeToWayCommand",
    "ChangeMembersCommand",
    "ChangeNodesCommand",
    "ChangePropertiesCommand",
    "ChangePropertyCommand",
    "DeleteCommand",
    "MoveNodeCommand",
    "UndoRedoHandler",
]
