"""
Conflation errors
"""

from typing import List


class ConflationError(Exception):
    """Base class for conflation failures"""


class MalformedDirective(ConflationError):
    """A directive tag value that cannot be decoded"""

    def __init__(self, key: str, value: str, reason: str):
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"Malformed {key}={value!r}: {reason}")


class UnresolvedReference(ConflationError):
    """A directive points at a primitive that is absent or deleted"""

    def __init__(self, reference: str, reason: str = "not in dataset"):
        self.reference = reference
        super().__init__(f"Cannot resolve {reference}: {reason}")


class CommandStateError(ConflationError):
    """A conflation command was driven out of its lifecycle order"""


class UndoNotAllowed(CommandStateError):
    """Undo requested on a command whose edits cannot be replayed"""


class UploadBlocked(ConflationError):
    """The dataset still carries directive tags that must not be published"""

    def __init__(self, offenders: List[str]):
        self.offenders = offenders
        preview = ", ".join(offenders[:10])
        more = f" (+{len(offenders) - 10} more)" if len(offenders) > 10 else ""
        super().__init__(f"Conflation keys left in {len(offenders)} object(s): {preview}{more}")
