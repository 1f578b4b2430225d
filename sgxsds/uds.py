"""Unix domain socket listeners."""

from __future__ import annotations

import logging
import os
import socket

log = logging.getLogger(__name__)


def new_listener(path: str | os.PathLike) -> socket.socket:
    """Create a listening Unix socket at ``path``, replacing any stale one.

    The socket file is made world read/writable so that a proxy running as
    another user can connect.
    """
    path = os.fspath(path)
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as err:
        raise OSError(f"failed to remove unix://{path}: {err}") from err

    directory = os.path.dirname(path)
    if directory:
        try:
            os.makedirs(directory, mode=0o750, exist_ok=True)
        except OSError as err:
            # A real problem will surface when binding.
            log.info("Failed to create directory for %s: %s", path, err)

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.bind(path)
        sock.listen()
    except OSError as err:
        sock.close()
        raise OSError(f"failed to listen on unix socket {path!r}: {err}") from err

    try:
        if not os.path.exists(path):
            raise OSError(f"uds file {path!r} doesn't exist")
        try:
            os.chmod(path, 0o666)
        except OSError as err:
            raise OSError(f"failed to update {path!r} permission") from err
    except OSError:
        sock.close()
        raise
    return sock