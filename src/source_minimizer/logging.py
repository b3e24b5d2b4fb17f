"""Structured logging utilities for minimization runs.

Adds both artefact persistence and lightweight streaming of events.
"""

from __future__ import annotations

import json
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


def _truthy(val: str | None) -> bool:
    return (val or "").strip().lower() in {"1", "true", "yes", "on", "enable", "enabled"}


class RunLogger:
    """Persist structured artefacts for a single minimization run.

    With ``base_dir=None`` nothing is written to disk and events are only
    echoed when streaming is enabled.
    """

    def __init__(self, base_dir: str | Path | None = None, run_id: str | None = None, *, stream: bool | None = None):
        self.run_dir: Optional[Path] = None
        self._events_path: Optional[Path] = None
        if base_dir is not None:
            base = Path(base_dir)
            base.mkdir(parents=True, exist_ok=True)
            if run_id is None:
                run_id = time.strftime("%Y%m%d-%H%M%S")
            self.run_dir = base / run_id
            self.run_dir.mkdir(parents=True, exist_ok=True)
            self._events_path = self.run_dir / "events.ndjson"
        # Event stream config (env var override)
        if stream is None:
            stream = _truthy(os.environ.get("SOURCE_MINIMIZER_LOG_STREAM"))
        self._stream = bool(stream)

    def path_for(self, name: str, suffix: str) -> Optional[Path]:
        if self.run_dir is None:
            return None
        return self.run_dir / f"{name}.{suffix}"

    def log_json(self, name: str, data: Any) -> Optional[Path]:
        path = self.path_for(name, "json")
        if path is None:
            return None
        path.write_text(json.dumps(data, indent=2, sort_keys=True))
        self.log_event("file.write", name=name, path=str(path))
        return path

    def log_event(self, kind: str, /, **data: Any) -> None:
        """Append a structured event to events.ndjson and optionally echo to stdout."""
        record = {
            "ts": time.time(),
            "ts_iso": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "kind": kind,
            "data": data,
        }
        if self._events_path is not None:
            with self._events_path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(record, separators=(",", ":"), default=str) + "\n")
        if self._stream:
            msg = f"[{record['ts_iso']}] {kind} "
            for key in ("pass_number", "outcome", "satisfied", "size"):
                if key in data:
                    msg += f"{key}={data[key]} "
            print(msg.strip(), file=sys.stdout, flush=True)
