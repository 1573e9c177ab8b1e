"""Thread-safe UDP endpoint.

One bound IPv4 datagram socket with an optional default remote host
and a receive timeout.  Sends and receives run on independent locks,
so one thread can block in :meth:`UdpEndpoint.receive` while others
transmit.  No reliability is added: datagrams may be lost, duplicated
or reordered by the network.

Example:
    >>> from udpsock.endpoint import UdpEndpoint
    >>> server = UdpEndpoint(16666)
    >>> client = UdpEndpoint()
    >>> client.send_to(b"hello world!\\0", 16666)
    13
    >>> server.receive()
    b'hello world!\\x00'
    >>> client.close()
    >>> server.close()
"""

import logging
import socket
import threading
from dataclasses import dataclass

from udpsock.config import DEFAULT_REMOTE_ADDRESS, MAX_PORT, MAX_RECEIVE_BUFFER_SIZE
from udpsock.errors import (
    ConfigurationError,
    ErrorKind,
    SendError,
    error_class,
    translate,
)
from udpsock.native import MAX_TIMEOUT_MS, get_platform

log = logging.getLogger(__name__)

ANY_ADDRESS = "0.0.0.0"


@dataclass(frozen=True)
class RemoteHost:
    """Default destination used by :meth:`UdpEndpoint.send`."""

    address: str
    port: int


def parse_address(address: str, kind: ErrorKind, stage: str = "address") -> str:
    """Parse a dotted-quad IPv4 address.

    Returns the canonical text form, so the socket layer never falls
    back to a name lookup.

    Raises:
        SocketError: Of *kind* if *address* is not a valid IPv4 address.

    Example:
        >>> parse_address("127.0.0.1", ErrorKind.SEND)
        '127.0.0.1'
    """
    try:
        packed = socket.inet_pton(socket.AF_INET, address)
    except (OSError, TypeError, ValueError) as exc:
        raise error_class(kind)(
            stage, detail="invalid address %r" % (address,),
        ) from exc
    return socket.inet_ntop(socket.AF_INET, packed)


def check_port(port: int, kind: ErrorKind, stage: str = "port") -> int:
    """Validate that *port* fits in 16 bits."""
    if (not isinstance(port, int) or isinstance(port, bool)
            or not 0 <= port <= MAX_PORT):
        raise error_class(kind)(stage, detail="invalid port %r" % (port,))
    return port


class UdpEndpoint:
    """A bound UDP socket with serialized send and receive paths.

    Three locks guard an endpoint: ``_lock`` for the remote host and
    lifecycle, ``_send_lock`` for outbound datagrams and ``_recv_lock``
    for inbound ones.  Lock order is always general, send, receive.

    Args:
        port: Local port to bind; 0 lets the OS pick one.
        address: Local IPv4 address to bind; ``""`` binds all
            interfaces.

    Raises:
        InitializationError: Bad address or port, or the socket could
            not be created, configured or bound.

    Example:
        >>> with UdpEndpoint(6666) as ep:
        ...     ep.set_receive_timeout(1000)
        ...     ep.receive()  # nothing arrives
        b''
    """

    def __init__(self, port: int = 0, address: str = ""):
        """Open the socket, set its options and bind it."""
        self._platform = get_platform()
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._recv_lock = threading.Lock()
        self._remote: RemoteHost | None = None
        self._timeout_ms = 0
        self._closed = False

        check_port(port, ErrorKind.INITIALIZATION)
        if address == "":
            host = ANY_ADDRESS
        else:
            host = parse_address(address, ErrorKind.INITIALIZATION)

        try:
            sock = self._platform.open()
        except OSError as exc:
            raise translate(ErrorKind.INITIALIZATION, "socket", exc) from exc

        try:
            self._setup(sock, host, port)
        except BaseException:
            sock.close()
            raise

        self._sock = sock
        self._local = sock.getsockname()
        log.debug("bound udp endpoint %s:%d", self._local[0], self._local[1])

    def _setup(self, sock: socket.socket, host: str, port: int) -> None:
        """Apply socket options and bind *sock* to (host, port)."""
        kind = ErrorKind.INITIALIZATION
        for name, option in (("SO_REUSEADDR", socket.SO_REUSEADDR),
                             ("SO_BROADCAST", socket.SO_BROADCAST)):
            try:
                sock.setsockopt(socket.SOL_SOCKET, option, 1)
            except OSError as exc:
                raise translate(kind, "setsockopt(%s)" % name, exc) from exc

        try:
            self._platform.apply_receive_timeout(sock, 0)
        except OSError as exc:
            raise translate(kind, "setsockopt(SO_RCVTIMEO)", exc) from exc

        try:
            sock.bind((host, port))
        except OSError as exc:
            raise translate(kind, "bind", exc) from exc

    @classmethod
    def from_config(cls, cfg: dict) -> "UdpEndpoint":
        """Build an endpoint from a :func:`udpsock.config.load_config` dict.

        Example:
            >>> ep = UdpEndpoint.from_config(load_config("endpoint.toml"))
            >>> ep.remote
            RemoteHost(address='127.0.0.1', port=16667)
        """
        endpoint = cls(cfg["port"], cfg["address"])
        try:
            if cfg["timeout_ms"]:
                endpoint.set_receive_timeout(cfg["timeout_ms"])
            if cfg["remote_port"] is not None:
                endpoint.configure_remote(cfg["remote_port"], cfg["remote_address"])
        except BaseException:
            endpoint.close()
            raise
        return endpoint

    # -- Lifecycle -----------------------------------------------------------

    def __enter__(self) -> "UdpEndpoint":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "bound"
        return "<UdpEndpoint %s:%d %s>" % (self._local[0], self._local[1], state)

    def close(self) -> None:
        """Close the socket.

        Waits for any in-flight send or receive to finish first.  A
        receive blocked with an indefinite timeout therefore keeps
        ``close()`` waiting until a datagram arrives.  Calling close
        again is a no-op.
        """
        with self._lock, self._send_lock, self._recv_lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._sock.close()
            except OSError:
                pass
        log.debug("closed udp endpoint %s:%d", self._local[0], self._local[1])

    @property
    def closed(self) -> bool:
        """True once :meth:`close` has run."""
        return self._closed

    @property
    def bound(self) -> bool:
        """True while the socket is bound and open."""
        return not self._closed

    @property
    def local_address(self) -> tuple[str, int]:
        """The bound ``(host, port)``, with the OS-chosen port if any."""
        return self._local

    @property
    def local_port(self) -> int:
        return self._local[1]

    def raw_handle(self) -> int:
        """Return the OS socket handle for low-level configuration.

        The handle stays owned by the endpoint; do not close it.
        Returns -1 after :meth:`close`.
        """
        return self._sock.fileno()

    # -- Configuration -------------------------------------------------------

    @property
    def remote(self) -> RemoteHost | None:
        """The configured default destination, or None."""
        with self._lock:
            return self._remote

    def configure_remote(self, port: int,
                         address: str = DEFAULT_REMOTE_ADDRESS) -> None:
        """Set the destination used by :meth:`send`.

        Args:
            port: Remote port.
            address: Remote IPv4 address (default loopback).

        Raises:
            ConfigurationError: If *port* or *address* is invalid.

        Example:
            >>> ep.configure_remote(16666)
            >>> ep.remote
            RemoteHost(address='127.0.0.1', port=16666)
        """
        check_port(port, ErrorKind.CONFIGURATION)
        host = parse_address(address, ErrorKind.CONFIGURATION)
        remote = RemoteHost(host, port)
        with self._lock:
            self._remote = remote
        log.debug("remote host set to %s:%d", host, port)

    @property
    def receive_timeout(self) -> int:
        """Receive timeout in milliseconds; 0 blocks indefinitely."""
        return self._timeout_ms

    def set_receive_timeout(self, timeout_ms: int) -> None:
        """Make receives give up after *timeout_ms* milliseconds.

        Args:
            timeout_ms: Timeout in milliseconds, 0 for no timeout.

        Raises:
            ConfigurationError: If the value is out of range or the
                socket option cannot be applied.
        """
        if not isinstance(timeout_ms, int) or not 0 <= timeout_ms <= MAX_TIMEOUT_MS:
            raise ConfigurationError(
                "timeout", detail="invalid timeout %r" % (timeout_ms,),
            )
        with self._lock:
            try:
                self._platform.apply_receive_timeout(self._sock, timeout_ms)
            except OSError as exc:
                raise translate(
                    ErrorKind.CONFIGURATION, "setsockopt(SO_RCVTIMEO)", exc,
                ) from exc
            self._timeout_ms = timeout_ms

    # -- Receive -------------------------------------------------------------

    def receive(self, max_bytes: int = MAX_RECEIVE_BUFFER_SIZE,
                flags: int = 0) -> bytes:
        """Receive one datagram.

        Blocks until a datagram arrives or the receive timeout elapses.
        A datagram longer than *max_bytes* is silently truncated.

        Args:
            max_bytes: Largest datagram to accept (default 1500).
            flags: ``MSG_*`` flags passed to recv.

        Returns:
            The datagram, or ``b""`` on timeout.

        Raises:
            ReceiveError: On any failure other than a timeout.
        """
        with self._recv_lock:
            try:
                data = self._sock.recv(max_bytes, flags)
            except OSError as exc:
                err = translate(
                    ErrorKind.RECEIVE, "recv", exc, self._platform.timeout_codes,
                )
                if err is None:
                    return b""
                raise err from exc
        log.debug("received %d bytes", len(data))
        return data

    def receive_into(self, buffer, capacity: int | None = None,
                     flags: int = 0) -> int:
        """Receive one datagram into *buffer*.

        Args:
            buffer: Writable bytes-like object (e.g. a ``bytearray``).
            capacity: Bytes of *buffer* to use; defaults to all of it.
            flags: ``MSG_*`` flags passed to recv.

        Returns:
            Number of bytes written, 0 on timeout.

        Raises:
            ValueError: If *capacity* exceeds the buffer size.
            ReceiveError: On any failure other than a timeout.

        Example:
            >>> buf = bytearray(256)
            >>> n = ep.receive_into(buf)
            >>> bytes(buf[:n])
            b'hello world!\\x00'
        """
        view = memoryview(buffer).cast("B")
        if capacity is None:
            capacity = view.nbytes
        elif not 0 <= capacity <= view.nbytes:
            raise ValueError(
                "capacity %d does not fit buffer of %d bytes" % (capacity, view.nbytes)
            )
        target = view[:capacity]

        with self._recv_lock:
            try:
                count = self._sock.recv_into(target, capacity, flags)
            except OSError as exc:
                err = translate(
                    ErrorKind.RECEIVE, "recv", exc, self._platform.timeout_codes,
                )
                if err is None:
                    return 0
                raise err from exc
        log.debug("received %d bytes", count)
        return count

    # -- Send ----------------------------------------------------------------

    def send_to(self, data, port: int, address: str = DEFAULT_REMOTE_ADDRESS,
                flags: int = 0) -> int:
        """Send *data* as one datagram to (address, port).

        Does not read or wait on the configured remote host.

        Args:
            data: Bytes-like payload.
            port: Destination port.
            address: Destination IPv4 address (default loopback).
            flags: ``MSG_*`` flags passed to sendto.

        Returns:
            Number of bytes sent (always the whole datagram).

        Raises:
            SendError: If the destination is invalid or transmission fails.
        """
        check_port(port, ErrorKind.SEND)
        host = parse_address(address, ErrorKind.SEND)
        with self._send_lock:
            return self._transmit(data, flags, (host, port))

    def send(self, data, flags: int = 0) -> int:
        """Send *data* as one datagram to the configured remote host.

        Raises:
            SendError: If no remote host is configured or transmission
                fails.
        """
        with self._lock, self._send_lock:
            remote = self._remote
            if remote is None:
                raise SendError("send", detail="remote not configured")
            return self._transmit(data, flags, (remote.address, remote.port))

    def _transmit(self, data, flags: int, dest: tuple[str, int]) -> int:
        """Call sendto; caller holds the send lock."""
        try:
            sent = self._sock.sendto(data, flags, dest)
        except OSError as exc:
            raise translate(ErrorKind.SEND, "sendto", exc) from exc
        log.debug("sent %d bytes to %s:%d", sent, dest[0], dest[1])
        return sent
