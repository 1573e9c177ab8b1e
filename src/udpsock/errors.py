"""Error kinds raised by udpsock and translation of platform failures.

Every fallible endpoint operation funnels its ``OSError`` through
:func:`translate`, which separates a receive timeout (not an error)
from a real transport failure.  There are exactly four kinds; platform
specific codes ride along as data.

Example:
    >>> from udpsock.errors import ErrorKind, translate
    >>> err = translate(ErrorKind.SEND, "sendto", OSError(101, "unreachable"))
    >>> str(err)
    'sendto: 101'
    >>> translate(ErrorKind.RECEIVE, "recv", OSError(errno.EAGAIN, "again"))
"""

import enum
import errno

# Winsock code for a receive that hit SO_RCVTIMEO.
WSAETIMEDOUT = 10060

POSIX_TIMEOUT_CODES = frozenset({errno.EAGAIN, errno.EWOULDBLOCK})
WINDOWS_TIMEOUT_CODES = frozenset({WSAETIMEDOUT})


class ErrorKind(enum.IntEnum):
    """The four reportable failure kinds."""

    INITIALIZATION = 0
    CONFIGURATION = 1
    RECEIVE = 2
    SEND = 3


class SocketError(Exception):
    """Failure of an endpoint operation.

    Args:
        stage: Short name of the step that failed (e.g. ``"bind"``).
        code: Platform error code (errno or Winsock code), or None when
            the failure did not come from the operating system.
        detail: Human-readable text used when there is no code.
        kind: Reportable kind; subclasses fix it.

    The message is ``"<stage>: <code>"`` for platform failures and
    ``"<stage>: <detail>"`` otherwise.
    """

    kind = None

    def __init__(self, stage: str, code: int | None = None,
                 detail: str = "", kind: ErrorKind | None = None):
        if kind is not None:
            self.kind = kind
        self.stage = stage
        self.code = code
        self.detail = detail
        if code is not None:
            message = "%s: %d" % (stage, code)
        else:
            message = "%s: %s" % (stage, detail)
        super().__init__(message)


class InitializationError(SocketError):
    """Address parse, socket creation, option or bind failure."""

    kind = ErrorKind.INITIALIZATION


class ConfigurationError(SocketError):
    """Invalid remote address or receive timeout not applied."""

    kind = ErrorKind.CONFIGURATION


class ReceiveError(SocketError):
    """Receive failed for a reason other than a timeout."""

    kind = ErrorKind.RECEIVE


class SendError(SocketError):
    """Bad destination, missing remote host, or transmission failure."""

    kind = ErrorKind.SEND


_BY_KIND = {
    ErrorKind.INITIALIZATION: InitializationError,
    ErrorKind.CONFIGURATION: ConfigurationError,
    ErrorKind.RECEIVE: ReceiveError,
    ErrorKind.SEND: SendError,
}


def error_class(kind: ErrorKind) -> type[SocketError]:
    """Return the exception class for *kind*."""
    return _BY_KIND[kind]


def error_code(exc: OSError) -> int | None:
    """Return the platform code of *exc*.

    Windows socket failures carry the Winsock code in ``winerror``;
    everywhere else the code is ``errno``.
    """
    code = getattr(exc, "winerror", None)
    if code is None:
        code = exc.errno
    return code


def is_timeout(exc: OSError, timeout_codes=None) -> bool:
    """Return True if *exc* means "no datagram before the timeout".

    Args:
        exc: The exception raised by the socket call.
        timeout_codes: Codes treated as a timeout.  Defaults to the
            POSIX and Windows codes together.
    """
    if isinstance(exc, TimeoutError):
        return True
    if timeout_codes is None:
        timeout_codes = POSIX_TIMEOUT_CODES | WINDOWS_TIMEOUT_CODES
    return error_code(exc) in timeout_codes


def translate(kind: ErrorKind, stage: str, exc: OSError,
              timeout_codes=None) -> SocketError | None:
    """Map *exc* to a :class:`SocketError` of *kind*, or None on timeout.

    Only the receive path has a timeout; for every other kind the
    result is always an error.

    Example:
        >>> err = translate(ErrorKind.RECEIVE, "recv", OSError(9, "bad fd"))
        >>> err.kind, err.code
        (<ErrorKind.RECEIVE: 2>, 9)
    """
    if kind == ErrorKind.RECEIVE and is_timeout(exc, timeout_codes):
        return None
    return error_class(kind)(stage, code=error_code(exc))
