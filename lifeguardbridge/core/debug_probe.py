from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable

from ..config import get_section

LogFn = Callable[..., None]

DEFAULT_TRACE_PATH = Path("storage/logs/lifeguard_trace.ndjson")


def console_log(message: str, level: str = "info") -> None:
    print(f"[Lifeguard] [{level.upper()}] {message}")


def _trace_path() -> Path | None:
    debug_cfg = get_section("debug")
    if not debug_cfg.get("trace_enabled", False):
        return None
    return Path(str(debug_cfg.get("trace_path") or DEFAULT_TRACE_PATH)).expanduser()


def append_debug_log(
    *,
    location: str,
    message: str,
    data: dict[str, Any],
    run_id: str = "bridge",
) -> None:
    path = _trace_path()
    if path is None:
        return
    payload = {
        "id": f"log_{int(time.time() * 1000)}_{location}",
        "timestamp": int(time.time() * 1000),
        "location": location,
        "message": message,
        "data": data,
        "runId": run_id,
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=False) + "\n")
    except OSError:
        pass
