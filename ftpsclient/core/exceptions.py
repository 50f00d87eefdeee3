"""Exception hierarchy for the FTPS client core."""


class FTPSError(Exception):
    """Base exception for every client failure."""

    pass


class FTPSConnectionError(FTPSError, ConnectionError):
    """TCP or TLS connection to a target could not be established."""

    pass


class ProtocolError(FTPSError):
    """Server reply had an unexpected shape."""

    pass


class AuthenticationError(ProtocolError):
    """A login step was refused while running in strict mode."""

    def __init__(self, message: str, response=None):
        super().__init__(message)
        self.response = response


class RejectedOperation(FTPSError):
    """Server answered a well-formed command with an error status."""

    def __init__(self, message: str, response=None):
        super().__init__(message)
        self.response = response


class LocalIOError(FTPSError, OSError):
    """Local file could not be opened, created, read, written or removed."""

    pass


class ValidationError(FTPSError, ValueError):
    """Operation arguments are malformed."""

    pass


class TransferError(FTPSError):
    """Data channel failed while a payload was in flight."""

    pass
