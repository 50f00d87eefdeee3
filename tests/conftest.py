"""
Shared fixtures for the ftpsclient tests.

No real network is used. FakeFTPServer stands in for the control socket and
answers commands synchronously from an in-memory file tree; each PASV
prepares a FakeSocket that FakeDialer hands out as the data connection.
FakeTLS records handshakes and returns the socket unchanged.
"""

import pytest

from ftpsclient.core import ControlConnectionManager

PASV_REPLY = "227 Entering Passive Mode (127,0,0,1,200,50)."


class FakeSocket:
    def __init__(self, payload: bytes = b""):
        self.incoming = bytearray(payload)
        self.sent = bytearray()
        self.closed = False
        self.timeout = "unset"
        self.on_close = None

    def settimeout(self, value):
        self.timeout = value

    def recv(self, size):
        if self.closed:
            raise OSError("recv on closed socket")
        chunk = bytes(self.incoming[:size])
        del self.incoming[:size]
        return chunk

    def sendall(self, data):
        if self.closed:
            raise OSError("send on closed socket")
        self.sent.extend(data)

    def shutdown(self, how):
        pass

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self.on_close is not None:
            self.on_close(bytes(self.sent))


class FakeFTPServer(FakeSocket):
    """Control connection that replies like an FTPS server."""

    def __init__(self, files=None, directories=None, replies=None,
                 banner="220 Service ready\r\n", pasv_reply=PASV_REPLY):
        super().__init__(banner.encode())
        self.files = dict(files or {})
        self.directories = set(directories or ()) | {"/"}
        self.replies = dict(replies or {})
        self.pasv_reply = pasv_reply
        self.commands = []
        self.pending_data = None
        self.data_sockets = []
        self._partial = bytearray()

    def sendall(self, data):
        super().sendall(data)
        self._partial.extend(data)
        while b"\r\n" in self._partial:
            raw, _, rest = bytes(self._partial).partition(b"\r\n")
            self._partial = bytearray(rest)
            self.handle(raw.decode())

    def reply(self, *lines):
        for line in lines:
            self.incoming.extend((line + "\r\n").encode())

    def handle(self, line):
        self.commands.append(line)
        verb, _, arg = line.partition(" ")
        verb = verb.upper()
        if verb in self.replies:
            canned = self.replies[verb]
            self.reply(*([canned] if isinstance(canned, str) else canned))
            return
        handler = getattr(self, f"do_{verb.lower()}", None)
        if handler is None:
            self.reply("502 Command not implemented")
            return
        handler(arg)

    # ----------------- session -----------------
    def do_auth(self, arg):
        self.reply("234 Proceed with negotiation.")

    def do_user(self, arg):
        self.reply("331 Please specify the password.")

    def do_pass(self, arg):
        self.reply("230 Login successful.")

    def do_pbsz(self, arg):
        self.reply("200 PBSZ set to 0.")

    def do_prot(self, arg):
        self.reply("200 PROT now Private.")

    def do_type(self, arg):
        self.reply("200 Switching to Binary mode.")

    def do_mode(self, arg):
        self.reply("200 Mode set to S.")

    def do_stru(self, arg):
        self.reply("200 Structure set to F.")

    def do_quit(self, arg):
        self.reply("221 Goodbye.")

    # ----------------- data channel -----------------
    def do_pasv(self, arg):
        self.pending_data = FakeSocket()
        self.data_sockets.append(self.pending_data)
        self.reply(self.pasv_reply)

    def do_list(self, arg):
        if arg not in self.directories:
            self.reply("550 Failed to open directory.")
            return
        prefix = arg.rstrip("/") + "/"
        names = sorted(path[len(prefix):] for path in self.files if path.startswith(prefix))
        listing = "".join(f"-rw-r--r--    1 ftp      ftp {len(self.files[prefix + name]):>8} Jan 01 00:00 {name}\r\n"
                          for name in names)
        self.data_sockets[-1].incoming.extend(listing.encode())
        self.reply("150 Here comes the directory listing.", "226 Directory send OK.")

    def do_retr(self, arg):
        if arg not in self.files:
            self.reply("550 Failed to open file.")
            return
        self.data_sockets[-1].incoming.extend(self.files[arg])
        self.reply(f"150 Opening BINARY mode data connection for {arg}.", "226 Transfer complete.")

    def do_stor(self, arg):
        def store(data):
            self.files[arg] = data
        self.data_sockets[-1].on_close = store
        self.reply("150 Ok to send data.", "226 Transfer complete.")

    # ----------------- control only -----------------
    def do_dele(self, arg):
        if self.files.pop(arg, None) is None:
            self.reply("550 Delete operation failed.")
        else:
            self.reply("250 Delete operation successful.")

    def do_mkd(self, arg):
        if arg in self.directories:
            self.reply("550 Create directory operation failed.")
        else:
            self.directories.add(arg)
            self.reply(f'257 "{arg}" created')

    def do_rmd(self, arg):
        if arg not in self.directories or arg == "/":
            self.reply("550 Remove directory operation failed.")
        else:
            self.directories.discard(arg)
            self.reply("250 Remove directory operation successful.")


class FakeDialer:
    """First call returns the control socket, later calls the pending data socket."""

    def __init__(self, server: FakeFTPServer):
        self.server = server
        self.addresses = []

    def __call__(self, address, timeout=None):
        self.addresses.append((address, timeout))
        if len(self.addresses) == 1:
            return self.server
        sock = self.server.pending_data
        if sock is None:
            raise ConnectionRefusedError(f"nothing listening on {address}")
        self.server.pending_data = None
        return sock

    @property
    def data_addresses(self):
        return [address for address, _ in self.addresses[1:]]


class FakeTLS:
    def __init__(self):
        self.calls = []

    def __call__(self, sock, server_hostname, session=None):
        self.calls.append((sock, server_hostname, session))
        return sock


@pytest.fixture
def server():
    return FakeFTPServer(
        files={
            "/docs/notes.txt": b"first line\nsecond line\n",
            "/docs/report.bin": bytes(range(256)) * 40,
        },
        directories={"/docs", "/empty"},
    )


@pytest.fixture
def dialer(server):
    return FakeDialer(server)


@pytest.fixture
def tls():
    return FakeTLS()


@pytest.fixture
def session(server, dialer, tls):
    """An authenticated control session with the login exchange cleared from the log."""
    conn = ControlConnectionManager("ftp.example.com", 21, dialer=dialer, tls_wrapper=tls)
    conn.connect()
    conn.read_banner()
    conn.authenticate("alice", "secret")
    server.commands.clear()
    return conn
