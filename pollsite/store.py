"""
Client for the external site-assignment store.

Owns the pooled engine and the connection state machine:

    DISCONNECTED -> CONNECTING -> CONNECTED | DEGRADED | DISCONNECTED

A connect sequence is a bounded retry loop with a fixed delay. When it
gives up the client stays DISCONNECTED and lookups report the store as
unavailable until a later health check or reconnect() succeeds. Only one
connect sequence runs at a time.
"""

import threading
from typing import Dict, Iterable, List, Optional

from sqlalchemy import inspect, select, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool

from .config import StoreConfig
from .database import build_engine, row_to_assignment, site_table
from .errors import InvalidQueryError, StoreConnectionError, StoreUnavailableError
from .logger import get_logger
from .models import ConnectionState, SiteAssignment
from .retry import RetryError, exponential_backoff, is_connection_error
from .schema import is_identifying_number

logger = get_logger()


class ExternalStoreClient:
    def __init__(self, config: StoreConfig, engine: Optional[Engine] = None):
        self.config = config
        self._engine = engine
        self._table = site_table(config.table)

        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._connect_lock = threading.Lock()

        self._stats_lock = threading.Lock()
        self._queries = {"total": 0, "successful": 0, "failed": 0}
        self.connect_sequences = 0

        self._probe: Optional[threading.Thread] = None
        self._probe_stop = threading.Event()

    # State

    @property
    def state(self) -> ConnectionState:
        with self._state_lock:
            return self._state

    @property
    def is_available(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState) -> None:
        with self._state_lock:
            previous, self._state = self._state, state
        if previous != state:
            logger.info(f"Store state {previous.value} -> {state.value}")

    def mark_disconnected(self, reason: str = "") -> None:
        """Flip to DISCONNECTED so lookups skip the store until a reconnect."""
        if self.state != ConnectionState.DISCONNECTED:
            logger.warning("Store marked disconnected", reason=reason)
        self._set_state(ConnectionState.DISCONNECTED)

    def _count(self, *keys: str) -> None:
        with self._stats_lock:
            for key in keys:
                self._queries[key] += 1

    def unavailable(self) -> StoreUnavailableError:
        """Count a query refused because the store is not connected."""
        self._count("total", "failed")
        return StoreUnavailableError(f"Store {self.state.value}")

    # Connect / reconnect

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = build_engine(self.config)
        return self._engine

    def _ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except (sa_exc.SQLAlchemyError, OSError) as e:
            raise StoreConnectionError(str(e)) from e

    def _table_exists(self) -> bool:
        try:
            return inspect(self.engine).has_table(self._table.name)
        except (sa_exc.SQLAlchemyError, OSError) as e:
            raise StoreConnectionError(str(e)) from e

    def connect(self) -> ConnectionState:
        """
        Run one connect sequence: up to retry_attempts + 1 tries, retry_delay apart.

        Never raises for store failures. If a sequence is already running,
        returns the current state without starting another.
        """
        if not self._connect_lock.acquire(blocking=False):
            logger.debug("Connect sequence already running")
            return self.state

        try:
            self.connect_sequences += 1
            missing = self.config.missing_fields()
            if missing:
                logger.warning("Incomplete store configuration", missing=missing)

            self._set_state(ConnectionState.CONNECTING)

            def on_retry(attempt, error, delay):
                logger.warning(
                    f"Store connect attempt {attempt}/{self.config.retry_attempts + 1} failed, "
                    f"retrying in {delay:.1f}s",
                    error=str(error),
                )

            attempt = exponential_backoff(
                max_retries=max(0, self.config.retry_attempts),
                base_delay=self.config.retry_delay,
                exponential_base=1.0,
                exceptions=(StoreConnectionError,),
                on_retry=on_retry,
            )(self._ping)

            try:
                attempt()
                table_ok = self._table_exists()
            except (RetryError, StoreConnectionError) as e:
                logger.warning("Store unavailable, using local data only", error=str(e))
                self._set_state(ConnectionState.DISCONNECTED)
                return ConnectionState.DISCONNECTED

            if not table_ok:
                logger.warning("Site table missing, store degraded", table=self._table.name)
                self._set_state(ConnectionState.DEGRADED)
                return ConnectionState.DEGRADED

            logger.info("Store connection established", table=self._table.name)
            self._set_state(ConnectionState.CONNECTED)
            return ConnectionState.CONNECTED
        finally:
            self._connect_lock.release()

    def reconnect(self) -> ConnectionState:
        """Drop pooled connections and run a fresh connect sequence."""
        if self._connect_lock.locked():
            return self.state
        if self._engine is not None:
            self._engine.dispose()
        return self.connect()

    def health_check(self) -> bool:
        """
        Probe the store. A failed probe on a live connection disconnects
        and starts a reconnect; a non-connected client tries to connect.
        """
        if self.state == ConnectionState.CONNECTED:
            try:
                self._ping()
                logger.debug("Health check: store reachable")
                return True
            except StoreConnectionError as e:
                self.mark_disconnected(str(e))
        elif self.state == ConnectionState.CONNECTING:
            return False
        return self.reconnect() == ConnectionState.CONNECTED

    def start_health_probe(self, interval: Optional[float] = None) -> None:
        if self._probe is not None and self._probe.is_alive():
            return
        interval = interval or self.config.health_interval
        self._probe_stop.clear()

        def run():
            while not self._probe_stop.wait(interval):
                self.health_check()

        self._probe = threading.Thread(target=run, name="store-health-probe", daemon=True)
        self._probe.start()

    def stop_health_probe(self) -> None:
        self._probe_stop.set()
        if self._probe is not None:
            self._probe.join(timeout=5)
            self._probe = None

    def close(self) -> None:
        self.stop_health_probe()
        if self._engine is not None:
            self._engine.dispose()
        self._set_state(ConnectionState.DISCONNECTED)

    # Queries

    def _handle_query_error(self, error: Exception, what: str) -> None:
        self._count("failed")
        if is_connection_error(error):
            self.mark_disconnected(str(error))
        else:
            logger.error(f"Store query failed: {what}", error=str(error))
        raise StoreUnavailableError(f"Store query failed: {error}") from error

    def lookup(self, identifying_number: str) -> Optional[SiteAssignment]:
        """
        Fetch the site assignment for one number.

        Returns None when the store has no row for it.

        Raises:
            InvalidQueryError: the number is not a digit string (no query sent)
            StoreUnavailableError: the store is not connected or the query failed
        """
        if not is_identifying_number(identifying_number):
            raise InvalidQueryError(f"Invalid identifying number: {identifying_number!r}")
        number = identifying_number.strip()

        if not self.is_available:
            raise self.unavailable()
        self._count("total")

        stmt = (
            select(self._table)
            .where(self._table.c.cedula == number)
            .limit(1)
        )
        try:
            with self.engine.connect() as conn:
                row = conn.execute(stmt).mappings().first()
        except (sa_exc.SQLAlchemyError, OSError) as e:
            self._handle_query_error(e, number)

        self._count("successful")
        if row is None:
            logger.debug("No site assignment", number=number)
            return None
        return row_to_assignment(row)

    def fetch_by_number(self, identifying_number: str) -> Optional[SiteAssignment]:
        """Like lookup(), but an unavailable store yields None instead of raising."""
        try:
            return self.lookup(identifying_number)
        except StoreUnavailableError:
            return None

    def lookup_many(self, identifying_numbers: Iterable[str]) -> Dict[str, SiteAssignment]:
        """
        Batched lookup. Blank and non-numeric ids are ignored.

        Raises:
            StoreUnavailableError: the store is not connected or the query failed
        """
        numbers: List[str] = list(dict.fromkeys(
            n.strip() for n in identifying_numbers if is_identifying_number(n)
        ))
        if not numbers:
            return {}

        if not self.is_available:
            raise self.unavailable()
        self._count("total")

        stmt = select(self._table).where(self._table.c.cedula.in_(numbers))
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except (sa_exc.SQLAlchemyError, OSError) as e:
            self._handle_query_error(e, f"{len(numbers)} numbers")

        self._count("successful")
        return {str(row["cedula"]).strip(): row_to_assignment(row) for row in rows}

    def fetch_many(self, identifying_numbers: Iterable[str]) -> Dict[str, SiteAssignment]:
        """Like lookup_many(), but an unavailable store yields an empty mapping."""
        try:
            return self.lookup_many(identifying_numbers)
        except StoreUnavailableError:
            return {}

    # Observability

    def get_stats(self) -> dict:
        with self._stats_lock:
            queries = dict(self._queries)

        pool = {}
        if self._engine is not None and isinstance(self._engine.pool, QueuePool):
            p = self._engine.pool
            pool = {"size": p.size(), "checked_out": p.checkedout(), "overflow": p.overflow()}

        state = self.state
        return {
            "state": state.value,
            "connected": state == ConnectionState.CONNECTED,
            "queries": queries,
            "pool": pool,
        }
