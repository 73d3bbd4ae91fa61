"""
Append-only audit trail of lookups.

Entries get sequential ids starting at 1 and are never changed or removed.
With a persistence path the whole log is rewritten as JSON after each
append and reloaded on start; without one it lives in memory only.
"""

import json
import threading
from datetime import date, datetime, time
from pathlib import Path
from typing import Callable, List, Optional, Union

from .logger import get_logger
from .models import AuditEntry, CallerIdentity, QueryKind

logger = get_logger()

DateLike = Union[date, datetime, str]


def load_entries(path: Path) -> List[AuditEntry]:
    if not path.exists():
        return []
    try:
        with path.open("r", encoding="utf-8") as f:
            content = f.read().strip()
            if not content:
                return []
            return [AuditEntry.from_dict(item) for item in json.loads(content)]
    except (json.JSONDecodeError, IOError, KeyError, TypeError, ValueError) as e:
        logger.warning("Audit file unreadable, starting empty", path=str(path), error=str(e))
        return []


def save_entries(path: Path, entries: List[AuditEntry]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump([e.to_dict() for e in entries], f, indent=2, ensure_ascii=False)


def _as_datetime(value: DateLike, end_of_day: bool = False) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    if end_of_day:
        day = value.date() if isinstance(value, datetime) else value
        return datetime.combine(day, time.max)
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


class AuditLog:
    def __init__(
        self,
        path: Optional[Path] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.path = Path(path) if path else None
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: List[AuditEntry] = load_entries(self.path) if self.path else []
        if self._entries:
            logger.info(f"Audit log reloaded: {len(self._entries)} entries", path=str(self.path))

    def record(
        self,
        caller: CallerIdentity,
        kind: QueryKind,
        parameter: str,
        found: bool,
    ) -> AuditEntry:
        """Append one entry and return it as stored."""
        with self._lock:
            entry = AuditEntry(
                id=len(self._entries) + 1,
                timestamp=self._clock(),
                caller=caller,
                kind=kind,
                parameter=parameter,
                found=found,
            )
            self._entries.append(entry)
            if self.path:
                try:
                    save_entries(self.path, self._entries)
                except OSError as e:
                    logger.error("Failed to persist audit log", path=str(self.path), error=str(e))
        return entry

    def query(
        self,
        caller_id: Optional[str] = None,
        date_from: Optional[DateLike] = None,
        date_to: Optional[DateLike] = None,
    ) -> List[AuditEntry]:
        """
        Filter entries; all given filters must match.

        Args:
            caller_id: Only entries made by this caller
            date_from: Entries at or after this moment (a date means its midnight)
            date_to: Entries up to the end of this day, inclusive
        """
        with self._lock:
            result = list(self._entries)

        if caller_id:
            result = [e for e in result if e.caller.id == caller_id]
        if date_from:
            start = _as_datetime(date_from)
            result = [e for e in result if e.timestamp >= start]
        if date_to:
            end = _as_datetime(date_to, end_of_day=True)
            result = [e for e in result if e.timestamp <= end]
        return result

    def count(self) -> int:
        with self._lock:
            return len(self._entries)
