from __future__ import annotations

import json
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from hiddenapi_audit.utils.artifact_store import ArtifactStore


class EventLogger:
    """Appends structured audit events as JSON lines under the artifact store.

    Disabled loggers accept every call and write nothing.
    """

    def __init__(
        self,
        store: ArtifactStore,
        run_id: Optional[str] = None,
        enabled: bool = True,
    ) -> None:
        self.store = store
        self.enabled = enabled
        self.run_id = run_id
        self.path = self._events_path()

    def _events_path(self) -> Path:
        name = f"{self.run_id}.jsonl" if self.run_id else "audit.jsonl"
        path = self.store.path("observability", "runs", name)
        if self.enabled:
            path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def log(self, event_type: str, **fields: Any) -> None:
        if not self.enabled:
            return
        event: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event_type": event_type,
            "analysis_id": self.store.analysis_id,
        }
        if self.run_id:
            event["run_id"] = self.run_id
        event.update(fields)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(event, ensure_ascii=True, default=str))
            handle.write("\n")

    @contextmanager
    def stage(self, name: str, **fields: Any) -> Iterator[Dict[str, Any]]:
        """Bracket a pipeline stage with start/end events.

        Entries added to the yielded dict are attached to the end event.
        A stage that raises is closed with status "failed" and the error type.
        """
        self.log("stage.start", stage=name, **fields)
        result: Dict[str, Any] = {}
        started = time.monotonic()
        try:
            yield result
        except Exception as exc:
            self.log(
                "stage.end",
                stage=name,
                status="failed",
                error_type=type(exc).__name__,
                duration_ms=_elapsed_ms(started),
            )
            raise
        self.log("stage.end", stage=name, status="ok", duration_ms=_elapsed_ms(started), **result)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
