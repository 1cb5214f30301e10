"""IPC helpers for talking to a running Reelframe supervisor."""

from __future__ import annotations

import json
import socket
from pathlib import Path
from typing import Any, Dict


class IPCError(RuntimeError):
    """Raised when communication with the supervisor fails."""


def send_ipc_command(socket_path: Path, payload: Dict[str, Any], timeout: float = 30.0) -> Dict[str, Any]:
    """Send ``payload`` to the supervisor socket and return its JSON response.

    The timeout is generous because ``next`` may copy a file from the remote
    store before answering.
    """

    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as client:
            client.settimeout(timeout)
            client.connect(str(socket_path))
            client.sendall(json.dumps(payload).encode("utf-8"))
            chunks = []
            while True:
                chunk = client.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
    except FileNotFoundError as exc:
        raise IPCError("Supervisor IPC socket not found. Is 'reelframe serve' running?") from exc
    except (socket.timeout, ConnectionRefusedError) as exc:
        raise IPCError("Unable to communicate with supervisor.") from exc
    except OSError as exc:
        raise IPCError(f"Supervisor IPC failed: {exc}") from exc

    try:
        return json.loads(b"".join(chunks).decode("utf-8"))
    except ValueError as exc:
        raise IPCError("Received invalid response from supervisor.") from exc
