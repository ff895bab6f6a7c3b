"""
Per-resource outcome of a sync stage.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass
class BatchResult:
    """Successful records plus (id, reason) pairs for the ones that failed"""
    resource: str
    succeeded: List[Any] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    truncated: bool = False  # A pagination cap stopped the fetch early

    @property
    def synced(self) -> int:
        return len(self.succeeded)

    @property
    def errors(self) -> int:
        return len(self.failed)

    def add_success(self, record: Any):
        self.succeeded.append(record)

    def add_failure(self, record_id: Any, error: Any):
        reason = error if isinstance(error, str) else f"{type(error).__name__}: {error}"
        self.failed.append((str(record_id), reason))

    def merge(self, other: "BatchResult"):
        self.succeeded.extend(other.succeeded)
        self.failed.extend(other.failed)
        self.truncated = self.truncated or other.truncated

    def to_summary(self) -> Dict[str, Any]:
        return {
            "synced": self.synced,
            "errors": self.errors,
            "failed": [{"id": rid, "reason": reason} for rid, reason in self.failed[:20]],
            "truncated": self.truncated,
        }
