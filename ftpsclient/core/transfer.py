import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional, TextIO

from ftpsclient.config import DEFAULT_CHUNK_SIZE
from ftpsclient.core.connection import ControlConnectionManager
from ftpsclient.core.data_connection import negotiate
from ftpsclient.core.exceptions import FTPSError, LocalIOError, RejectedOperation, TransferError
from ftpsclient.core.operation import Direction, Operation, OperationKind
from ftpsclient.core.parser import StatusResponse

logger = logging.getLogger(__name__)

TRANSFER_PREAMBLE = ("TYPE I", "MODE S", "STRU F")


@dataclass
class TransferResult:
    ok: bool
    status: Optional[StatusResponse] = None
    error: Optional[FTPSError] = None
    bytes_transferred: int = 0


class TransferOrchestrator:
    """
    Runs one Operation against an authenticated control session.

    Rejected commands and local or data channel failures end the operation
    with a failed TransferResult. Connection and protocol errors propagate.
    """

    def __init__(self, session: ControlConnectionManager, output: Optional[TextIO] = None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE, eager_connect: bool = False, local_dir: Optional[str] = None):
        self.session = session
        self.output = output or sys.stdout
        self.chunk_size = chunk_size
        self.eager_connect = eager_connect
        self.local_dir = local_dir

    def run(self, operation: Operation) -> TransferResult:
        handlers = {
            OperationKind.LIST: self.list_directory,
            OperationKind.MAKE_DIRECTORY: self.simple,
            OperationKind.REMOVE_FILE: self.simple,
            OperationKind.REMOVE_DIRECTORY: self.simple,
            OperationKind.COPY: self.copy,
            OperationKind.MOVE: self.move,
        }
        try:
            return handlers[operation.kind](operation)
        except RejectedOperation as e:
            logger.warning(f"{operation.kind.value} {operation.remote_path} rejected: {e}")
            return TransferResult(ok=False, status=e.response, error=e)
        except (LocalIOError, TransferError) as e:
            logger.warning(f"{operation.kind.value} failed: {e}")
            return TransferResult(ok=False, status=self.session.last_response, error=e)

    # ----------------- control-only operations -----------------
    def simple(self, operation: Operation) -> TransferResult:
        status = self.session.execute(operation.command_line())
        if status.is_error:
            raise RejectedOperation(f"server replied {status}", status)
        return TransferResult(ok=True, status=status)

    # ----------------- data channel operations -----------------
    def list_directory(self, operation: Operation) -> TransferResult:
        channel = self._open_channel(operation)
        failure = None
        with channel:
            try:
                for line in channel.receive_lines():
                    self.output.write(line + "\n")
            except TransferError as e:
                failure = e
        self.output.flush()
        return self._finish(0, failure)

    def copy(self, operation: Operation) -> TransferResult:
        operation.command_line()  # ValidationError when direction is unresolved
        self.prepare_transfer()
        if operation.direction is Direction.LOCAL_TO_REMOTE:
            return self._upload(operation)
        return self._download(operation)

    def move(self, operation: Operation) -> TransferResult:
        """
        Copy, then remove the source once the server confirms the transfer.

        A failed or rejected copy leaves the source in place.
        """
        result = self.copy(operation)
        if operation.direction is Direction.LOCAL_TO_REMOTE:
            try:
                os.remove(operation.local_path)
            except OSError as e:
                raise LocalIOError(f"Error deleting file {operation.local_path}: {e}") from e
            logger.info(f"Removed local source {operation.local_path}")
            return result

        dele = self.session.execute(f"DELE {operation.remote_path}")
        return TransferResult(ok=True, status=dele, bytes_transferred=result.bytes_transferred)

    def prepare_transfer(self):
        """Binary type, stream mode, file structure. Replies are only logged."""
        return [self.session.execute(command) for command in TRANSFER_PREAMBLE]

    def local_target(self, local_path: str) -> str:
        name = local_path.rstrip('/').split('/')[-1]
        if not name:
            raise LocalIOError(f"Local path has no file name: {local_path!r}")
        if self.local_dir:
            return os.path.join(self.local_dir, name)
        return name

    # ----------------- helpers -----------------
    def _open_channel(self, operation: Operation):
        channel = negotiate(self.session, operation.command_line(), eager_connect=self.eager_connect)
        if channel is None:
            status = self.session.last_response
            raise RejectedOperation(f"server replied {status}", status)
        return channel

    def _finish(self, transferred: int, failure: Optional[FTPSError] = None) -> TransferResult:
        status = self.session.read_status()
        logger.info(f"Transfer finished -> {status}")
        if failure is not None:
            raise failure
        if status.is_error:
            raise RejectedOperation(f"transfer failed: {status}", status)
        return TransferResult(ok=True, status=status, bytes_transferred=transferred)

    def _upload(self, operation: Operation) -> TransferResult:
        try:
            source = open(operation.local_path, 'rb')
        except OSError as e:
            raise LocalIOError(f"Error reading from local file: {e}") from e

        with source:
            channel = self._open_channel(operation)
            sent, failure = 0, None
            with channel:
                try:
                    sent = channel.send_from(source, self.chunk_size)
                except (LocalIOError, TransferError) as e:
                    failure = e
        return self._finish(sent, failure)

    def _download(self, operation: Operation) -> TransferResult:
        target = self.local_target(operation.local_path)
        channel = self._open_channel(operation)
        received, failure = 0, None
        with channel:
            try:
                sink = open(target, 'wb')
            except OSError as e:
                failure = LocalIOError(f"Error creating local file {target}: {e}")
            else:
                with sink:
                    try:
                        received = channel.receive_to(sink)
                    except (LocalIOError, TransferError) as e:
                        failure = e
        if failure is None:
            logger.info(f"Downloaded {operation.remote_path} to {target}")
        return self._finish(received, failure)
