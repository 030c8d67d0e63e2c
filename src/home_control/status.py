"""
Shared latest-known state of the control plane.

One StatusStore is built at process start and handed to both the
reconciliation loop and the control server. Every read or write touches a
single field under the lock; there are no multi-field transactions and no
history, only the latest value of each field.
"""

# --- Standard library imports ---
import threading
from datetime import datetime
from dataclasses import dataclass, fields, asdict
from typing import Any, Callable, Optional

# --- Project imports ---
from .logger import get_logger


@dataclass(frozen=True)
class StatusSnapshot:
    current_public_ip: Optional[str] = None
    current_dns_ip: Optional[str] = None
    last_check_at: Optional[datetime] = None
    next_check_at: Optional[datetime] = None
    current_pc_online: Optional[bool] = None

    def to_dict(self) -> dict:
        """JSON-friendly view with ISO-8601 timestamps."""
        data = asdict(self)
        for key in ("last_check_at", "next_check_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "StatusSnapshot":
        values = {f.name: data.get(f.name) for f in fields(cls)}
        for key in ("last_check_at", "next_check_at"):
            if values[key]:
                values[key] = datetime.fromisoformat(values[key])
        return cls(**values)


StatusObserver = Callable[[StatusSnapshot], None]

STATUS_FIELDS = tuple(f.name for f in fields(StatusSnapshot))


class StatusStore:
    """
    Thread-safe holder of the StatusSnapshot fields with a publish hook.

    Writers replace one field at a time; readers never see a partially
    built value. Observers receive a snapshot copy on publish(). An initial
    snapshot (e.g. the last one written to the status file) seeds the fields.
    """

    def __init__(self, initial: Optional[StatusSnapshot] = None) -> None:
        self.logger = get_logger("status")
        self._lock = threading.Lock()
        self._values: dict[str, Any] = {
            name: getattr(initial, name, None) for name in STATUS_FIELDS
        }
        self._observers: list[StatusObserver] = []

    def get(self, name: str) -> Any:
        with self._lock:
            return self._values[name]

    def set(self, name: str, value: Any) -> None:
        if name not in STATUS_FIELDS:
            raise KeyError(f"Unknown status field: {name}")
        with self._lock:
            self._values[name] = value

    def snapshot(self) -> StatusSnapshot:
        with self._lock:
            return StatusSnapshot(**self._values)

    def subscribe(self, observer: StatusObserver) -> None:
        with self._lock:
            self._observers.append(observer)

    def publish(self) -> StatusSnapshot:
        """
        Hand the current snapshot to every observer.

        A failing observer is logged and does not stop the others.
        """
        snapshot = self.snapshot()
        with self._lock:
            observers = list(self._observers)

        for observer in observers:
            try:
                observer(snapshot)
            except Exception as e:
                self.logger.error(
                    f"Status observer {observer!r} failed ({type(e).__name__}: {e})"
                )

        return snapshot
