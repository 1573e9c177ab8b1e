"""Project-wide configuration constants and config-file loading.

Central place for tuneable parameters shared across modules.
Import individual names where needed.

Example:
    >>> from udpsock.config import load_config, MAX_RECEIVE_BUFFER_SIZE
    >>> cfg = load_config("endpoint.toml")
    >>> cfg["port"]
    16666
"""

import tomllib

from udpsock.native import MAX_TIMEOUT_MS

# Default receive buffer size in bytes (one Ethernet MTU).
MAX_RECEIVE_BUFFER_SIZE = 1500

# Destination used when no remote address is given.
DEFAULT_REMOTE_ADDRESS = "127.0.0.1"

# Receive timeout in milliseconds; 0 blocks indefinitely.
DEFAULT_TIMEOUT_MS = 0

MAX_PORT = 0xFFFF


def load_config(path: str) -> dict:
    """Read a TOML endpoint config file and validate it.

    Keys in the ``[endpoint]`` table: ``port`` (int, default 0),
    ``address`` (str, default ``""`` = any), ``timeout_ms`` (int,
    default 0).  An optional ``[remote]`` table with ``port`` (int,
    required) and ``address`` (str, default loopback) pins the default
    destination.

    Returns:
        dict with ``port``, ``address``, ``timeout_ms``, and
        ``remote_port``/``remote_address`` (None when no [remote]).

    Raises:
        ValueError: If a key has the wrong type or is out of range.

    Example:
        >>> cfg = load_config("endpoint.toml")
        >>> cfg["remote_port"]
        16667
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    endpoint = _require_table(raw, "endpoint", required=False)
    result = {
        "port": _optional_port(endpoint, "endpoint.port", 0),
        "address": _optional_str(endpoint, "endpoint.address", ""),
        "timeout_ms": _optional_int(endpoint, "endpoint.timeout_ms",
                                    DEFAULT_TIMEOUT_MS),
        "remote_port": None,
        "remote_address": None,
    }
    if not 0 <= result["timeout_ms"] <= MAX_TIMEOUT_MS:
        raise ValueError(
            "endpoint.timeout_ms must be in 0..%d" % MAX_TIMEOUT_MS
        )

    if "remote" in raw:
        remote = _require_table(raw, "remote", required=True)
        if "port" not in remote:
            raise ValueError("missing required key: remote.port")
        result["remote_port"] = _optional_port(remote, "remote.port", 0)
        result["remote_address"] = _optional_str(
            remote, "remote.address", DEFAULT_REMOTE_ADDRESS,
        )

    return result


def _require_table(raw: dict[str, object], name: str, required: bool) -> dict:
    """Return the ``[name]`` table, or {} if absent and not required."""
    if name not in raw:
        if required:
            raise ValueError("missing required section: [%s]" % name)
        return {}
    table = raw[name]
    if not isinstance(table, dict):
        raise ValueError("[%s] must be a table" % name)
    return table


def _optional_int(table: dict[str, object], key: str, default: int) -> int:
    """Return the int at the last component of *key*, or *default*."""
    name = key.rsplit(".", 1)[-1]
    if name not in table:
        return default
    value = table[name]
    # bool is an int subclass; TOML true/false is never a number here
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError("%s must be int, got %s" % (key, type(value).__name__))
    return value


def _optional_port(table: dict[str, object], key: str, default: int) -> int:
    """Like :func:`_optional_int`, restricted to 0..65535."""
    port = _optional_int(table, key, default)
    if not 0 <= port <= MAX_PORT:
        raise ValueError("%s must be in 0..%d, got %d" % (key, MAX_PORT, port))
    return port


def _optional_str(table: dict[str, object], key: str, default: str) -> str:
    """Return the str at the last component of *key*, or *default*."""
    name = key.rsplit(".", 1)[-1]
    if name not in table:
        return default
    value = table[name]
    if not isinstance(value, str):
        raise ValueError("%s must be str, got %s" % (key, type(value).__name__))
    return value
