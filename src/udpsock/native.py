"""Platform socket backends.

The endpoint code is written once against :class:`PlatformSocket`.
Two backends exist: :class:`PosixSocket` (Linux, macOS, BSD) and
:class:`WindowsSocket`.  They differ in how SO_RCVTIMEO is encoded
and in which error codes mean "receive timed out".

The backend is chosen and started once per process by
:func:`get_platform`; later calls return the cached instance.

Example:
    >>> from udpsock.native import get_platform
    >>> backend = get_platform()
    >>> backend.name
    'posix'
    >>> backend.encode_timeout(1500) == struct.pack("ll", 1, 500000)
    True
"""

import logging
import socket
import struct
import sys
import threading

from udpsock.errors import POSIX_TIMEOUT_CODES, WINDOWS_TIMEOUT_CODES

log = logging.getLogger(__name__)

# Largest value SO_RCVTIMEO accepts from us (unsigned 32-bit ms).
MAX_TIMEOUT_MS = 0xFFFFFFFF


class PlatformSocket:
    """Capabilities the endpoint needs from the operating system.

    Subclasses set ``name`` and ``timeout_codes`` and implement
    :meth:`encode_timeout`.
    """

    name = ""
    timeout_codes = frozenset()

    def startup(self) -> None:
        """One-time network subsystem start-up for this platform."""

    def open(self) -> socket.socket:
        """Create an IPv4 datagram socket."""
        return socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def encode_timeout(self, timeout_ms: int) -> bytes:
        """Return the SO_RCVTIMEO option value for *timeout_ms*."""
        raise NotImplementedError

    def apply_receive_timeout(self, sock: socket.socket, timeout_ms: int) -> None:
        """Set SO_RCVTIMEO on *sock*; 0 means block indefinitely.

        Raises:
            OSError: If the option cannot be applied.
        """
        sock.setsockopt(
            socket.SOL_SOCKET, socket.SO_RCVTIMEO,
            self.encode_timeout(timeout_ms),
        )


class PosixSocket(PlatformSocket):
    """POSIX sockets: timeouts are a ``struct timeval``."""

    name = "posix"
    timeout_codes = POSIX_TIMEOUT_CODES

    # struct timeval { time_t tv_sec; suseconds_t tv_usec; }
    _TIMEVAL = struct.Struct("ll")

    def encode_timeout(self, timeout_ms: int) -> bytes:
        """Split *timeout_ms* into seconds and microseconds.

        Example:
            >>> PosixSocket().encode_timeout(2250) == struct.pack("ll", 2, 250000)
            True
        """
        seconds, millis = divmod(timeout_ms, 1000)
        return self._TIMEVAL.pack(seconds, millis * 1000)


class WindowsSocket(PlatformSocket):
    """Winsock: timeouts are a DWORD of milliseconds."""

    name = "windows"
    timeout_codes = WINDOWS_TIMEOUT_CODES

    _DWORD = struct.Struct("<I")

    def startup(self) -> None:
        """Make sure Winsock is up.

        CPython calls WSAStartup when the ``socket`` module is first
        imported, so all that is left is to confirm that happened.
        """
        if not hasattr(socket, "SO_EXCLUSIVEADDRUSE"):
            log.warning("socket module does not look like a Winsock build")

    def encode_timeout(self, timeout_ms: int) -> bytes:
        """Pack *timeout_ms* as a DWORD."""
        return self._DWORD.pack(timeout_ms)


_platform: PlatformSocket | None = None
_platform_lock = threading.Lock()


def select_platform(platform_name: str = sys.platform) -> PlatformSocket:
    """Return a fresh backend for *platform_name* (a ``sys.platform`` value)."""
    if platform_name.startswith("win"):
        return WindowsSocket()
    return PosixSocket()


def get_platform() -> PlatformSocket:
    """Return the process-wide backend, starting it on first use."""
    global _platform
    if _platform is not None:
        return _platform
    with _platform_lock:
        if _platform is None:
            backend = select_platform()
            backend.startup()
            log.debug("network backend ready: %s", backend.name)
            _platform = backend
    return _platform
