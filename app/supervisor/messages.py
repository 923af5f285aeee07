from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Shutdown:
    """Primary -> worker: finish the current job and exit."""

    type: str = "shutdown"


@dataclass(frozen=True)
class Ready:
    """Worker -> primary: connections are up and jobs are being consumed."""

    type: str = "ready"


@dataclass(frozen=True)
class ShutdownComplete:
    """Worker -> primary: in-flight work drained and connections closed."""

    type: str = "shutdown-complete"


@dataclass(frozen=True)
class StartupError:
    """Worker -> primary: the worker could not start."""

    reason: str = ""
    type: str = "startup-error"


Message = Shutdown | Ready | ShutdownComplete | StartupError

_BY_TYPE: dict[str, type] = {
    "shutdown": Shutdown,
    "ready": Ready,
    "shutdown-complete": ShutdownComplete,
    "startup-error": StartupError,
}


def to_wire(message: Message) -> dict[str, Any]:
    if isinstance(message, StartupError):
        return {"type": message.type, "reason": message.reason}
    return {"type": message.type}


def from_wire(payload: object) -> Message:
    """Decode a channel payload.

    Raises:
        ValueError: if the payload is not a known tagged message.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Malformed IPC message: {payload!r}")
    message_cls = _BY_TYPE.get(str(payload.get("type")))
    if message_cls is None:
        raise ValueError(f"Unknown IPC message type: {payload.get('type')!r}")
    if message_cls is StartupError:
        return StartupError(reason=str(payload.get("reason", "")))
    return message_cls()
