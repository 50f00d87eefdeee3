"""
User-facing operations and their translation into protocol command lines.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ftpsclient.core.exceptions import ValidationError


class OperationKind(Enum):
    LIST = "ls"
    MAKE_DIRECTORY = "mkdir"
    REMOVE_FILE = "rm"
    REMOVE_DIRECTORY = "rmdir"
    COPY = "cp"
    MOVE = "mv"

    @classmethod
    def from_keyword(cls, keyword: str) -> "OperationKind":
        try:
            return cls(keyword)
        except ValueError:
            raise ValidationError(f"Unknown operation: {keyword}") from None

    @property
    def is_transfer(self) -> bool:
        return self in (OperationKind.COPY, OperationKind.MOVE)


class Direction(Enum):
    NONE = "none"
    LOCAL_TO_REMOTE = "local_to_remote"
    REMOTE_TO_LOCAL = "remote_to_local"


_SIMPLE_VERBS = {
    OperationKind.LIST: "LIST",
    OperationKind.MAKE_DIRECTORY: "MKD",
    OperationKind.REMOVE_FILE: "DELE",
    OperationKind.REMOVE_DIRECTORY: "RMD",
}


@dataclass(frozen=True)
class Operation:
    kind: OperationKind
    remote_path: str
    local_path: Optional[str] = None
    direction: Direction = Direction.NONE

    def command_line(self) -> str:
        return translate_command(self.kind, self.remote_path, self.direction)


def translate_command(kind: OperationKind, remote_path: str, direction: Direction = Direction.NONE) -> str:
    """Returns the CRLF-terminated protocol command for an operation."""
    if kind in _SIMPLE_VERBS:
        return f"{_SIMPLE_VERBS[kind]} {remote_path}\r\n"

    if kind.is_transfer:
        if direction is Direction.REMOTE_TO_LOCAL:
            return f"RETR {remote_path}\r\n"
        if direction is Direction.LOCAL_TO_REMOTE:
            return f"STOR {remote_path}\r\n"
        raise ValidationError(f"{kind.value} requires exactly one local path and one remote URL")

    raise ValidationError(f"Unsupported operation: {kind}")
