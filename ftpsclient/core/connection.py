import socket
import logging
from typing import Callable, Iterator, List, Optional

from ftpsclient.config import ClientConfig, DEFAULT_CHUNK_SIZE, DEFAULT_CONNECT_TIMEOUT
from ftpsclient.core.exceptions import AuthenticationError, FTPSConnectionError, ProtocolError
from ftpsclient.core.parser import Parser, StatusResponse

logger = logging.getLogger(__name__)

# dialer(address, timeout) -> connected socket
Dialer = Callable[..., socket.socket]
# tls_wrapper(sock, server_hostname, session) -> secured socket
TLSWrapper = Callable[..., socket.socket]


def default_dialer(address, timeout=None):
    return socket.create_connection(address, timeout=timeout)


def make_tls_wrapper(context) -> TLSWrapper:
    def wrap(sock, server_hostname, session=None):
        return context.wrap_socket(sock, server_hostname=server_hostname, session=session)
    return wrap


class ControlConnectionManager:
    """
    The single control connection of a client run.

    Starts as plaintext, is upgraded in place to TLS by authenticate() and is
    closed by quit(). Reads are blocking with no timeout; only connect() is
    bounded.
    """

    def __init__(self, host: str, port: int = 21, timeout: float = DEFAULT_CONNECT_TIMEOUT,
                 server_name: Optional[str] = None, dialer: Optional[Dialer] = None,
                 tls_wrapper: Optional[TLSWrapper] = None, parser: Optional[Parser] = None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.server_name = server_name or host
        self.dialer = dialer or default_dialer
        self.tls_wrapper = tls_wrapper
        self.parser = parser or Parser()
        self.socket: Optional[socket.socket] = None
        self.secure = False
        self.last_response: Optional[StatusResponse] = None
        self._buffer = b""

    @classmethod
    def from_config(cls, host: str, port: int, config: ClientConfig,
                    dialer: Optional[Dialer] = None, tls_wrapper: Optional[TLSWrapper] = None):
        return cls(
            host,
            port,
            timeout=config.connect_timeout,
            server_name=config.server_name_for(host),
            dialer=dialer,
            tls_wrapper=tls_wrapper or make_tls_wrapper(config.ssl_context()),
        )

    # ----------------- lifecycle -----------------
    def connect(self):
        if self.socket is not None:
            raise RuntimeError("Connection already established.")
        try:
            logger.info(f"Connecting to {self.host}:{self.port} (timeout={self.timeout}s)")
            sock = self.dialer((self.host, self.port), self.timeout)
            sock.settimeout(None)
        except OSError as e:
            logger.error(f"✗ Failed to connect to {self.host}:{self.port} - {e}")
            raise FTPSConnectionError(f"Failed to connect to {self.host}:{self.port} - {e}") from e
        self.socket = sock
        self.secure = False
        self._buffer = b""
        logger.info(f"✓ Connected to {self.host}:{self.port}")
        return self

    def upgrade_to_secure(self):
        """Wraps the current stream in a TLS client handshake."""
        self._require_socket()
        if self.secure:
            raise RuntimeError("Control connection is already secured.")
        if self.tls_wrapper is None:
            self.tls_wrapper = make_tls_wrapper(ClientConfig().ssl_context())
        if self._buffer:
            raise ProtocolError("Unexpected data from server before TLS handshake")
        try:
            logger.info(f"Starting TLS handshake with {self.host}:{self.port} as {self.server_name}")
            self.socket = self.tls_wrapper(self.socket, self.server_name)
        except OSError as e:
            logger.error(f"✗ TLS handshake failed - {e}")
            raise FTPSConnectionError(f"TLS handshake with {self.server_name} failed - {e}") from e
        self.secure = True
        logger.info("✓ Control connection secured")
        return self

    @property
    def tls_session(self):
        if not self.secure:
            return None
        return getattr(self.socket, 'session', None)

    def disconnect(self):
        if self.socket:
            try:
                logger.info(f"Closing connection to {self.host}:{self.port}")
                self.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self.socket.close()
            logger.info(f"✓ Disconnected from {self.host}:{self.port}")
        self.socket = None
        self.secure = False
        self._buffer = b""

    def quit(self):
        """Best-effort QUIT and close. Never raises."""
        if self.socket is None:
            return None
        response = None
        try:
            response = self.execute("QUIT")
        except (OSError, ProtocolError) as e:
            logger.warning(f"QUIT failed on {self.host}:{self.port} - {e}")
        finally:
            self.disconnect()
        return response

    # ----------------- primitives -----------------
    def send_command(self, command: str):
        self._require_socket()
        if not command.endswith('\r\n'):
            command += '\r\n'
        logger.debug(f"→ SEND: {self._mask(command.strip())}")
        try:
            self.socket.sendall(command.encode('utf-8'))
        except OSError as e:
            logger.error(f"Error writing to server: {e}")
            raise

    def receive_line(self) -> str:
        """One LF-terminated line, or "" once the server has closed the stream."""
        self._require_socket()
        while b"\n" not in self._buffer:
            try:
                data = self.socket.recv(DEFAULT_CHUNK_SIZE)
            except OSError as e:
                logger.error(f"Error reading from server: {e}")
                raise
            if not data:
                line, self._buffer = self._buffer, b""
                return line.decode('utf-8', errors='replace')
            self._buffer += data
        line, _, self._buffer = self._buffer.partition(b"\n")
        return (line + b"\n").decode('utf-8', errors='replace')

    def receive_all(self) -> Iterator[str]:
        while True:
            line = self.receive_line()
            if not line:
                return
            yield line

    def read_status(self) -> StatusResponse:
        line = self.receive_line()
        if not line:
            raise ProtocolError(f"Connection closed by {self.host}:{self.port} while awaiting a reply")
        logger.debug(f"← RECV: {line.strip()}")
        response = self.parser.parse_data(line)
        if response.type == 'unknown':
            raise ProtocolError(f"Malformed reply from server: {line.strip()!r}")

        # "123-first line" ... "123 last line"
        if line[3:4] == '-':
            terminator = response.code + ' '
            while True:
                line = self.receive_line()
                if not line:
                    raise ProtocolError("Connection closed inside a multi-line reply")
                logger.debug(f"← RECV: {line.strip()}")
                if line.startswith(terminator):
                    response.message = line.strip()[4:]
                    break
        self.last_response = response
        return response

    def execute(self, command: str) -> StatusResponse:
        self.send_command(command)
        response = self.read_status()
        logger.info(f"{self._mask(command.strip())} -> {response}")
        return response

    def read_banner(self) -> StatusResponse:
        return self.read_status()

    def authenticate(self, username: str, password: str, strict: bool = False) -> List[StatusResponse]:
        """
        Secures the connection and logs in.

        Runs AUTH TLS, the TLS handshake, USER, PBSZ 0, PROT P and PASS in
        that order. Every reply is logged and returned. Unless strict is set
        the sequence continues whatever the replies say.
        """
        steps = []

        def step(command: str, label: str):
            response = self.execute(command)
            steps.append(response)
            if strict and response.is_error:
                raise AuthenticationError(f"{label} rejected: {response}", response)

        step("AUTH TLS", "AUTH TLS")
        self.upgrade_to_secure()
        step(f"USER {username}", "USER")
        step("PBSZ 0", "PBSZ")
        step("PROT P", "PROT")
        step(f"PASS {password}", "PASS")
        return steps

    # ----------------- helpers -----------------
    def _require_socket(self):
        if self.socket is None:
            raise RuntimeError("No connection established.")

    @staticmethod
    def _mask(command: str) -> str:
        if command.upper().startswith("PASS "):
            return "PASS ****"
        return command
