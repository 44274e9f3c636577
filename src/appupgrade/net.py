"""Network helpers."""

from __future__ import annotations

import socket


def get_outbound_ip() -> str:
    """Return the preferred outbound IP address of this machine.

    Connecting a UDP socket sends no packets; it only asks the kernel which
    local address would route to the target.

    Raises:
        OSError: if no route is available.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.connect(("8.8.8.8", 80))
        return sock.getsockname()[0]
