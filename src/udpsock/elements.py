"""Send and receive sequences of fixed-size values.

The endpoint only moves bytes.  These helpers pack a list of values
with a ``struct`` format describing one element and unpack received
datagrams the same way.

Example:
    >>> from udpsock.elements import pack_elements, unpack_elements
    >>> raw = pack_elements("<h", [1, -2, 300])
    >>> raw.hex(' ')
    '01 00 fe ff 2c 01'
    >>> unpack_elements("<h", raw)
    [1, -2, 300]
"""

import struct

from udpsock.config import DEFAULT_REMOTE_ADDRESS, MAX_RECEIVE_BUFFER_SIZE


def pack_elements(fmt: str, values) -> bytes:
    """Pack *values* back to back using the one-element format *fmt*.

    Values are scalars for single-field formats (``"<h"``) and tuples
    for multi-field ones (``"<hB"``).
    """
    element = struct.Struct(fmt)
    if _field_count(element) == 1:
        return b"".join(element.pack(v) for v in values)
    return b"".join(element.pack(*v) for v in values)


def unpack_elements(fmt: str, data: bytes) -> list:
    """Split *data* into elements of format *fmt*.

    A trailing partial element is zero-padded to full size.

    Example:
        >>> unpack_elements("<h", b"\\x01\\x00\\x02")
        [1, 2]
    """
    element = struct.Struct(fmt)
    if element.size == 0:
        raise ValueError("element format %r has zero size" % fmt)
    tail = len(data) % element.size
    if tail:
        data = bytes(data) + b"\x00" * (element.size - tail)

    items = element.iter_unpack(data)
    if _field_count(element) == 1:
        return [item[0] for item in items]
    return list(items)


def send_elements(endpoint, fmt: str, values, flags: int = 0) -> int:
    """Send *values* to the endpoint's configured remote host.

    Returns:
        Number of bytes sent.
    """
    return endpoint.send(pack_elements(fmt, values), flags)


def send_elements_to(endpoint, fmt: str, values, port: int,
                     address: str = DEFAULT_REMOTE_ADDRESS, flags: int = 0) -> int:
    """Send *values* to (address, port)."""
    return endpoint.send_to(pack_elements(fmt, values), port, address, flags)


def receive_elements(endpoint, fmt: str,
                     max_bytes: int = MAX_RECEIVE_BUFFER_SIZE,
                     flags: int = 0) -> list:
    """Receive one datagram and unpack it; ``[]`` on timeout."""
    return unpack_elements(fmt, endpoint.receive(max_bytes, flags))


def _field_count(element: struct.Struct) -> int:
    """Number of values one ``pack`` call of *element* takes."""
    return len(element.unpack(b"\x00" * element.size))
