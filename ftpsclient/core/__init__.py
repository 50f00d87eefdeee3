"""
Core FTPS client logic.
Includes the control session, passive data channel, parser, operations and
the transfer orchestrator.
"""

from .exceptions import (
    FTPSError,
    FTPSConnectionError,
    ProtocolError,
    AuthenticationError,
    RejectedOperation,
    LocalIOError,
    ValidationError,
    TransferError,
)
from .parser import Parser, StatusResponse, ConnectionTarget
from .operation import OperationKind, Direction, Operation, translate_command
from .connection import ControlConnectionManager
from .data_connection import DataConnectionManager, negotiate
from .transfer import TransferOrchestrator, TransferResult

__all__ = [
    "FTPSError",
    "FTPSConnectionError",
    "ProtocolError",
    "AuthenticationError",
    "RejectedOperation",
    "LocalIOError",
    "ValidationError",
    "TransferError",
    "Parser",
    "StatusResponse",
    "ConnectionTarget",
    "OperationKind",
    "Direction",
    "Operation",
    "translate_command",
    "ControlConnectionManager",
    "DataConnectionManager",
    "negotiate",
    "TransferOrchestrator",
    "TransferResult",
]
