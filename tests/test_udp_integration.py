"""Integration tests: endpoints talking to each other over localhost.

Covers the end-to-end scenarios:
- one endpoint sends with send_to, another receives
- configured-remote send matches send_to
- receive timeout with no traffic
- many threads receiving or sending on one endpoint
"""

import threading
import time

import pytest

from udpsock.endpoint import UdpEndpoint

HELLO = b"hello world!\x00"


@pytest.fixture
def pair():
    """Endpoint S1 on port 16666 and an ephemeral endpoint S2."""
    s1 = UdpEndpoint(16666)
    s2 = UdpEndpoint()
    s1.set_receive_timeout(2000)
    try:
        yield s1, s2
    finally:
        s2.close()
        s1.close()


@pytest.mark.integration
class TestSendReceive:
    """send_to/send from S2 observed at S1."""

    def test_send_to_receive(self, pair):
        """S2.send_to reaches S1.receive intact, trailing NUL included."""
        s1, s2 = pair

        def send_later():
            time.sleep(0.05)
            s2.send_to(HELLO, 16666)

        t = threading.Thread(target=send_later)
        t.start()
        received = s1.receive()
        t.join()

        assert received == HELLO

    def test_send_to_receive_into(self, pair):
        """The buffer form sees the same bytes."""
        s1, s2 = pair

        t = threading.Thread(target=lambda: s2.send_to(HELLO, 16666))
        t.start()
        buf = bytearray(256)
        n = s1.receive_into(buf, 256)
        t.join()

        assert n == len(HELLO)
        assert bytes(buf[:n]) == HELLO

    def test_configured_remote(self, pair):
        """send to a configured remote delivers like send_to."""
        s1, s2 = pair
        s2.configure_remote(16666)

        assert s2.send(HELLO) == len(HELLO)
        via_send = s1.receive()
        assert s2.send_to(HELLO, 16666) == len(HELLO)
        via_send_to = s1.receive()

        assert via_send == via_send_to == HELLO

    @pytest.mark.parametrize("payload", [
        b"\x00",
        b"\x00" * 64,
        bytes(range(256)),
        b"a\x00b\x00c",
    ])
    def test_payloads_survive(self, pair, payload):
        """Arbitrary bytes, including zero bytes, arrive unchanged."""
        s1, s2 = pair
        s2.send_to(payload, 16666)
        assert s1.receive() == payload

    def test_source_is_ephemeral_endpoint(self, pair):
        """Datagrams carry S2's bound port, so S1 can reply to it."""
        s1, s2 = pair
        s2.set_receive_timeout(2000)
        s2.send_to(b"ping", 16666)
        assert s1.receive() == b"ping"

        s1.send_to(b"pong", s2.local_port)
        assert s2.receive() == b"pong"


@pytest.mark.integration
class TestTimeout:
    """Receive timeout with no peer."""

    def test_one_second_timeout(self):
        """S1 on port 6666 with a 1000 ms timeout returns b'' after ~1 s."""
        with UdpEndpoint(6666) as s1:
            s1.set_receive_timeout(1000)
            start = time.monotonic()
            result = s1.receive()
            elapsed = time.monotonic() - start

            assert result == b""
            assert 0.9 <= elapsed < 3.0

            buf = bytearray(256)
            assert s1.receive_into(buf, 256) == 0


@pytest.mark.integration
class TestConcurrency:
    """Many threads on one endpoint."""

    def test_concurrent_receivers(self):
        """N receivers racing N datagrams see each datagram exactly once."""
        n = 8
        with UdpEndpoint(0, "127.0.0.1") as rx, UdpEndpoint() as tx:
            rx.set_receive_timeout(3000)
            results = []
            results_lock = threading.Lock()

            def receiver():
                data = rx.receive()
                with results_lock:
                    results.append(data)

            threads = [threading.Thread(target=receiver) for _ in range(n)]
            for t in threads:
                t.start()

            sent = [b"datagram-%02d" % i for i in range(n)]
            for payload in sent:
                tx.send_to(payload, rx.local_port)

            for t in threads:
                t.join(timeout=5.0)

            assert sorted(results) == sorted(sent)

    def test_concurrent_senders(self):
        """Sends from many threads arrive whole, one datagram each."""
        threads_n = 4
        per_thread = 20
        with UdpEndpoint(0, "127.0.0.1") as rx, UdpEndpoint() as tx:
            rx.set_receive_timeout(1000)
            tx.configure_remote(rx.local_port)

            def sender(k):
                for i in range(per_thread):
                    if i % 2:
                        tx.send(b"%d:%d" % (k, i))
                    else:
                        tx.send_to(b"%d:%d" % (k, i), rx.local_port)

            threads = [threading.Thread(target=sender, args=(k,))
                       for k in range(threads_n)]
            for t in threads:
                t.start()

            received = set()
            while len(received) < threads_n * per_thread:
                data = rx.receive()
                if not data:
                    break
                received.add(data)

            for t in threads:
                t.join(timeout=5.0)

            expected = {b"%d:%d" % (k, i)
                        for k in range(threads_n) for i in range(per_thread)}
            assert received == expected
