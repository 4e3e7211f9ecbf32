"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- Severity filtering via configure(); default threshold is INFO
- No side effects beyond logging
"""

from __future__ import annotations

import json
import sys
from typing import Any, Mapping, Callable


_LEVELS: dict[str, int] = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
}


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def _plain_print(event: Mapping[str, Any]) -> str:
    head = f"[{event.get('level', 'info').upper()}] {event.get('event_type', '-')}"
    rest = " ".join(
        f"{k}={v!r}" for k, v in event.items() if k not in ("level", "event_type")
    )
    return f"{head} {rest}".rstrip()


_print: Callable[[str], None] = _stdout_print
_min_level: int = _LEVELS["info"]
_json_output: bool = True


def configure(*, level: str = "INFO", json_output: bool = True) -> None:
    """
    Set the process-wide severity threshold and output format.

    Unknown level names fall back to INFO.
    """
    global _min_level, _json_output  # pylint: disable=global-statement
    _min_level = _LEVELS.get(level.lower(), _LEVELS["info"])
    _json_output = json_output


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, agent_id, state, etc. where known

    This function:
    - Drops events below the configured level ("level" key, default info)
    - Serializes to JSON
    - Writes exactly one line
    - Never raises
    """
    level = str(event.get("level", "info")).lower()
    if _LEVELS.get(level, _LEVELS["info"]) < _min_level:
        return

    if not _json_output:
        _print(_plain_print(event))
        return

    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "level": "error",
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
