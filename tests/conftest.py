"""Shared pytest fixtures for udpsock tests."""

import socket
from unittest.mock import MagicMock, patch

import pytest

from udpsock.native import PlatformSocket


def find_free_port() -> int:
    """Find an available UDP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def send_udp(port: int, data: bytes) -> None:
    """Send a UDP datagram to localhost:port from a throwaway socket."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.sendto(data, ("127.0.0.1", port))
    sock.close()


def make_fake_socket() -> MagicMock:
    """Build a stand-in for socket.socket that accepts every call."""
    fake = MagicMock(spec=socket.socket)
    fake.getsockname.return_value = ("0.0.0.0", 40000)
    fake.fileno.return_value = 42
    return fake


@pytest.fixture
def fake_sock():
    """Make every new endpoint wrap a MagicMock socket."""
    fake = make_fake_socket()
    with patch.object(PlatformSocket, "open", return_value=fake):
        yield fake
