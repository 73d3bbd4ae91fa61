"""
Lookup orchestrator.

Responsibilities:
- Validate caller input.
- Read the local index and the cached external store for one number.
- Merge both halves and tag where each came from.
- Record exactly one audit entry per accepted lookup.

Non-Responsibilities:
- No HTTP status mapping: an empty result is returned, not raised.
- No authentication: the caller identity arrives already verified.

Invariant:
A failing external store never fails resolve(); it only removes the
external half.
"""

from typing import Iterable, List, Optional

from .audit import AuditLog
from .cache import ResultCache
from .errors import InvalidQueryError, StoreUnavailableError
from .index import LocalIndex
from .logger import StructuredLogger, get_logger
from .models import (
    CallerIdentity,
    MergedResult,
    PersonRecord,
    Provenance,
    QueryKind,
)
from .schema import is_identifying_number, validate_name_fragment
from .store import ExternalStoreClient

ANONYMOUS = CallerIdentity(id="anonymous")


class LookupCoordinator:
    def __init__(
        self,
        index: LocalIndex,
        store: ExternalStoreClient,
        cache: ResultCache,
        audit: AuditLog,
        logger: Optional[StructuredLogger] = None,
    ):
        self.index = index
        self.store = store
        self.cache = cache
        self.audit = audit
        self.logger = logger or get_logger()

    def _external(self, number: str):
        try:
            # Cached halves are only served while the store is connected
            if not self.store.is_available:
                raise self.store.unavailable()
            return self.cache.get_or_fetch(number, self.store.lookup)
        except StoreUnavailableError as e:
            self.logger.debug("External half unavailable", number=number, error=str(e))
            self.logger.record_error(type(e).__name__)
            return None

    def resolve(self, identifying_number: str, caller: CallerIdentity = ANONYMOUS) -> MergedResult:
        """
        Merge the local profile and the site assignment for one number.

        Raises:
            InvalidQueryError: the number is empty or not all digits
        """
        if not is_identifying_number(identifying_number):
            raise InvalidQueryError(
                f"Invalid identifying number: {identifying_number!r} (digits only)"
            )
        number = identifying_number.strip()

        person = self.index.get_by_number(number)
        site = self._external(number)

        provenance = set()
        if person is not None:
            provenance.add(Provenance.LOCAL)
        if site is not None:
            provenance.add(Provenance.EXTERNAL)
        result = MergedResult(
            identifying_number=number,
            person=person,
            site=site,
            provenance=frozenset(provenance),
        )

        self.audit.record(caller, QueryKind.BY_NUMBER, number, found=person is not None)
        self.logger.record_lookup(QueryKind.BY_NUMBER.value, person is not None)
        self.logger.info(
            "Resolved number",
            number=number,
            caller=caller.id,
            provenance=sorted(p.value for p in provenance),
        )
        return result

    def search_by_name(self, fragment: str, caller: CallerIdentity = ANONYMOUS) -> List[PersonRecord]:
        """
        Case-insensitive substring search over local full names.

        Raises:
            InvalidQueryError: fragment shorter than two characters
        """
        errors = validate_name_fragment(fragment)
        if errors:
            raise InvalidQueryError(errors[0])
        needle = fragment.strip().upper()

        records = self.index.search_by_name(needle)

        self.audit.record(caller, QueryKind.BY_NAME, needle, found=bool(records))
        self.logger.record_lookup(QueryKind.BY_NAME.value, bool(records))
        self.logger.info("Name search", fragment=needle, caller=caller.id, matches=len(records))
        return records

    def warm_cache(self, identifying_numbers: Iterable[str]) -> int:
        """Prefetch site assignments with one batched query. Not audited."""
        numbers = [n.strip() for n in identifying_numbers if is_identifying_number(n)]
        try:
            written = self.cache.warm(numbers, self.store.lookup_many)
        except StoreUnavailableError as e:
            self.logger.warning("Cache warm-up skipped, store unavailable", error=str(e))
            return 0
        self.logger.info(f"Cache warmed with {written} numbers")
        return written

    def get_status(self) -> dict:
        store = self.store.get_stats()
        store["available"] = store["connected"]
        return {
            "store": store,
            "cache": self.cache.stats(),
            "local_records": len(self.index),
            "audit_entries": self.audit.count(),
        }
