import logging
import socket
from typing import BinaryIO, Iterator, Optional

from ftpsclient.config import DEFAULT_CHUNK_SIZE
from ftpsclient.core.connection import ControlConnectionManager, default_dialer
from ftpsclient.core.exceptions import FTPSConnectionError, LocalIOError, TransferError

logger = logging.getLogger(__name__)


class DataConnectionManager:
    def __init__(self, ip: str, port: int, server_name: Optional[str] = None,
                 timeout: Optional[float] = None, dialer=None, tls_wrapper=None, tls_session=None):
        """
        Maneja la conexión de datos PASV del cliente FTPS.

        El canal transporta un único listado o archivo y se cierra al terminar.
        Se asegura con el mismo nombre de servidor que el canal de control y
        reanuda la sesión TLS de ese canal cuando existe.
        """
        self.ip = ip
        self.port = port
        self.server_name = server_name or ip
        self.timeout = timeout
        self.dialer = dialer or default_dialer
        self.tls_wrapper = tls_wrapper
        self.tls_session = tls_session
        self.data_socket: Optional[socket.socket] = None
        self.secure = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def connect(self):
        """
        Establece la conexión TCP con el servidor en el canal de datos.
        """
        try:
            self.data_socket = self.dialer((self.ip, self.port), self.timeout)
            self.data_socket.settimeout(None)
        except OSError as e:
            logger.error(f"[DATA] ✗ Failed to connect to {self.ip}:{self.port} - {e}")
            self.data_socket = None
            raise FTPSConnectionError(f"Error connecting data socket to {self.ip}:{self.port} - {e}") from e
        logger.info(f"[DATA] Connected to {self.ip}:{self.port}")
        return self

    def secure_channel(self):
        if self.tls_wrapper is None:
            self.close()
            raise RuntimeError("No TLS wrapper configured for the data channel.")
        try:
            self.data_socket = self.tls_wrapper(self.data_socket, self.server_name, session=self.tls_session)
        except OSError as e:
            logger.error(f"[DATA] ✗ TLS handshake failed - {e}")
            self.close()
            raise FTPSConnectionError(f"TLS handshake on data channel failed - {e}") from e
        self.secure = True
        logger.debug(f"[DATA] Channel to {self.ip}:{self.port} secured")
        return self

    def close(self):
        """
        Cierra la conexión de datos.
        """
        if self.data_socket:
            try:
                # close_notify precedes the TCP close
                unwrap = getattr(self.data_socket, 'unwrap', None)
                if self.secure and unwrap is not None:
                    self.data_socket = unwrap()
            except (OSError, ValueError) as e:
                logger.debug(f"[DATA] TLS shutdown on {self.ip}:{self.port} failed - {e}")
            try:
                self.data_socket.close()
            except OSError as e:
                logger.warning(f"[DATA] Error closing {self.ip}:{self.port} - {e}")
            self.data_socket = None
            self.secure = False
            logger.info(f"[DATA] Disconnected from {self.ip}:{self.port}")

    def iter_chunks(self) -> Iterator[bytes]:
        while True:
            try:
                data = self.data_socket.recv(DEFAULT_CHUNK_SIZE)
            except OSError as e:
                raise TransferError(f"Data channel to {self.ip}:{self.port} failed: {e}") from e
            if not data:
                return
            yield data

    def receive_lines(self) -> Iterator[str]:
        """
        Recibe la lista de archivos/directorios del servidor, línea a línea.
        """
        pending = b""
        for chunk in self.iter_chunks():
            pending += chunk
            while b"\n" in pending:
                line, _, pending = pending.partition(b"\n")
                yield line.rstrip(b"\r").decode('utf-8', errors='replace')
        if pending:
            yield pending.rstrip(b"\r").decode('utf-8', errors='replace')

    def receive_to(self, sink: BinaryIO) -> int:
        """Copies the whole payload into sink and returns the byte count."""
        total = 0
        for chunk in self.iter_chunks():
            try:
                sink.write(chunk)
            except OSError as e:
                raise LocalIOError(f"Error writing to local file: {e}") from e
            total += len(chunk)
        logger.info(f"[DATA] Received {total} bytes from {self.ip}:{self.port}")
        return total

    def send_from(self, source: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
        total = 0
        while True:
            try:
                chunk = source.read(chunk_size)
            except OSError as e:
                raise LocalIOError(f"Error reading from local file: {e}") from e
            if not chunk:
                break
            try:
                self.data_socket.sendall(chunk)
            except OSError as e:
                raise TransferError(f"Data channel to {self.ip}:{self.port} failed after {total} bytes: {e}") from e
            total += len(chunk)
        logger.info(f"[DATA] Sent {total} bytes to {self.ip}:{self.port}")
        return total


def negotiate(session: ControlConnectionManager, command: str,
              eager_connect: bool = False) -> Optional[DataConnectionManager]:
    """
    Opens a passive-mode data channel for a single command.

    Sends PASV, decodes the advertised address, sends ``command`` and reads
    its reply. An error-class reply returns None without touching the
    advertised address. Otherwise the data connection is opened, secured and
    returned.

    With eager_connect the TCP connection is made as soon as the command has
    been sent, before its reply is read, and is closed again on rejection.
    """
    session.send_command("PASV")
    reply = session.receive_line()
    logger.debug(f"← RECV: {reply.strip()}")
    ip, port = session.parser.parse_pasv_response(reply)

    channel = DataConnectionManager(
        ip,
        port,
        server_name=session.server_name,
        timeout=session.timeout,
        dialer=session.dialer,
        tls_wrapper=session.tls_wrapper,
        tls_session=session.tls_session,
    )

    session.send_command(command)
    if eager_connect:
        channel.connect()

    try:
        response = session.read_status()
    except Exception:
        channel.close()
        raise
    logger.info(f"{command.strip()} -> {response}")

    if response.is_error:
        logger.warning(f"Server rejected {command.strip()}: {response}")
        channel.close()
        return None

    if channel.data_socket is None:
        channel.connect()
    return channel.secure_channel()
