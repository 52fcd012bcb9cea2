"""Per-item outcome reporting for best-effort bulk operations."""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from ..errors import ReviewError


@dataclass
class BatchItem:
    key: Any
    ok: bool
    status: str = "ok"
    error_kind: Optional[str] = None
    message: Optional[str] = None


@dataclass
class BatchResult:
    """
    Outcome of a bulk operation made of independent per-row writes.

    Rows are not rolled back together: callers retry only the failed keys
    and re-read final state.
    """
    items: List[BatchItem] = field(default_factory=list)

    def succeed(self, key: Any, status: str = "ok", message: Optional[str] = None) -> None:
        self.items.append(BatchItem(key=key, ok=True, status=status, message=message))

    def fail(self, key: Any, error: Exception) -> None:
        kind = error.kind if isinstance(error, ReviewError) else "internal"
        message = error.message if isinstance(error, ReviewError) else str(error)
        self.items.append(BatchItem(key=key, ok=False, status="failed", error_kind=kind, message=message))

    @property
    def succeeded(self) -> List[BatchItem]:
        return [item for item in self.items if item.ok]

    @property
    def failed(self) -> List[BatchItem]:
        return [item for item in self.items if not item.ok]

    @property
    def all_ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "items": [asdict(item) for item in self.items],
        }
