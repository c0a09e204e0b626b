# utils/tracing.py
"""Per-request structured trace, passed explicitly through the pipeline."""

import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class ClassificationTrace:
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    search_path: str = "none"
    timings_ms: Dict[str, int] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)
    _started: float = field(default_factory=time.perf_counter, repr=False)

    def record(self, event: str, **details: Any) -> None:
        self.events.append({"event": event, **details})

    @contextmanager
    def phase(self, name: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timings_ms[name] = int((time.perf_counter() - start) * 1000)

    def finish(self) -> None:
        self.timings_ms["total"] = int((time.perf_counter() - self._started) * 1000)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "search_path": self.search_path,
            "timings_ms": dict(self.timings_ms),
            "events": list(self.events),
        }
