"""Control messages a client sends against a session.

Inbound frames:
  - input:  {"type": "input", "data": "..."}
  - resize: {"type": "resize", "cols": N, "rows": N}
  - kill:   {"type": "kill"}

Raw text that is not a JSON object with a ``type`` is treated as input.
Outbound frames are built in ``termhub.pty.sink``.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from termhub.errors import SessionNotFound

if TYPE_CHECKING:
    from termhub.pty.manager import PTYManager

logger = logging.getLogger(__name__)


def parse_control_message(raw: str | bytes) -> dict[str, Any]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        msg = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return {"type": "input", "data": raw}
    if not isinstance(msg, dict) or "type" not in msg:
        return {"type": "input", "data": raw}
    return msg


async def handle_control_message(
    manager: PTYManager, session_id: str, raw: str | bytes
) -> bool:
    """Apply one inbound frame to a session.

    Returns False when the frame was ignored (unknown type, bad payload,
    unknown session); never raises for client mistakes.
    """
    msg = parse_control_message(raw)
    kind = msg.get("type")

    if kind == "input":
        data = msg.get("data")
        if not isinstance(data, str):
            return False
        try:
            manager.write(session_id, data)
        except SessionNotFound:
            logger.debug("Input for unknown session %s dropped", session_id)
            return False
        except TimeoutError:
            return False
        return True

    if kind == "resize":
        try:
            cols = int(msg["cols"])
            rows = int(msg["rows"])
        except (KeyError, TypeError, ValueError):
            logger.debug("Malformed resize for session %s: %r", session_id, msg)
            return False
        return manager.resize(session_id, cols, rows)

    if kind == "kill":
        await manager.kill(session_id)
        return True

    logger.debug("Unknown control message type %r for session %s", kind, session_id)
    return False
