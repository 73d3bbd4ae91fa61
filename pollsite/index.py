"""
Local person index.

Loaded once from a JSON array at startup and read-only afterwards, so
any number of threads may read it without locking.
"""

import json
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import DataLoadError
from .logger import get_logger
from .models import PersonRecord
from .schema import validate_person

logger = get_logger()


class LocalIndex:
    def __init__(self, records: Optional[List[PersonRecord]] = None):
        self._by_number: Dict[str, PersonRecord] = {}
        # (upper-cased full name, record), one per identifying number
        self._names: List[Tuple[str, PersonRecord]] = []
        self.skipped = 0
        if records:
            self._build(records)

    @classmethod
    def load(cls, path: Path) -> "LocalIndex":
        """
        Build the index from a JSON file holding an array of person objects.

        Raises:
            DataLoadError: file missing, unreadable, not JSON, or not an array
                of objects. Individual bad records are skipped instead.
        """
        path = Path(path)
        if not path.exists():
            raise DataLoadError(f"People file not found: {path}")
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            raise DataLoadError(f"Could not read people file {path}: {e}") from e

        if not isinstance(data, list):
            raise DataLoadError(f"People file must hold a JSON array: {path}")
        if any(not isinstance(item, dict) for item in data):
            raise DataLoadError(f"People file entries must be objects: {path}")

        records = []
        skipped = 0
        for position, item in enumerate(data):
            errors = validate_person(item)
            if errors:
                skipped += 1
                logger.debug("Skipping person record", position=position, errors=errors)
                continue
            records.append(PersonRecord.from_dict(item))

        index = cls(records)
        index.skipped = skipped
        logger.info(
            f"Local index loaded: {len(index)} records",
            path=str(path),
            skipped=skipped,
        )
        return index

    def _build(self, records: List[PersonRecord]) -> None:
        for record in records:
            key = record.identifying_number.strip()
            if key in self._by_number:
                continue
            self._by_number[key] = record
            self._names.append((record.full_name.upper(), record))

    def __len__(self) -> int:
        return len(self._by_number)

    def get_by_number(self, identifying_number: str) -> Optional[PersonRecord]:
        return self._by_number.get(identifying_number.strip())

    def search_by_name(self, fragment: str) -> List[PersonRecord]:
        """Case-insensitive substring match on full name."""
        needle = fragment.upper()
        return [record for name, record in self._names if needle in name]

    def stats(self) -> dict:
        """Record counts, overall and per group, neighborhood and gender."""
        records = list(self._by_number.values())
        return {
            "total": len(records),
            "by_group": dict(Counter(r.group or "unknown" for r in records)),
            "by_neighborhood": dict(Counter(r.neighborhood or "unknown" for r in records)),
            "by_gender": dict(Counter(r.gender or "unknown" for r in records)),
        }
