"""Session store.

Holds live checkout sessions in memory. Each session lives in a slot
that carries an ``asyncio.Lock`` and a generation number; mutations go
through ``lease`` so that at most one coroutine touches a session at a
time. Expired sessions are evicted lazily on access and periodically by
an APScheduler interval job.
"""

import asyncio
import itertools
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from agentcheckout.application.events import log_domain_events
from agentcheckout.domain.base import utcnow
from agentcheckout.domain.entities import CheckoutSession, PricingPolicy
from agentcheckout.domain.exceptions import SessionNotFoundError
from agentcheckout.domain.value_objects import SessionId

logger = structlog.get_logger()


@dataclass
class _Slot:
    session: CheckoutSession
    generation: int
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SessionStore:
    """In-memory arena of checkout sessions keyed by session id."""

    def __init__(
        self,
        pricing: PricingPolicy,
        ttl_seconds: int = 3600,
        sweep_interval_seconds: float = 300,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the store.

        Args:
            pricing: Totals calculator handed to every new session.
            ttl_seconds: Session lifetime.
            sweep_interval_seconds: Interval of the background sweep.
            clock: Source of the current time.
        """
        self.pricing = pricing
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._slots: dict[str, _Slot] = {}
        self._generations = itertools.count(1)
        self._scheduler: AsyncIOScheduler | None = None
        self._sweep_job: Job | None = None
        self._evict_listeners: list[Callable[[str], None]] = []

    # -------------------------------------------------------------------------
    # Lookup and lifecycle
    # -------------------------------------------------------------------------

    def create(self) -> CheckoutSession:
        """Create and store a new pending session with a fresh id."""
        session_id = SessionId.generate()
        while str(session_id) in self._slots:
            session_id = SessionId.generate()

        session = CheckoutSession.create(self.pricing, self.ttl_seconds, session_id=session_id, now=self._clock())
        self._slots[str(session_id)] = _Slot(session=session, generation=next(self._generations))
        log_domain_events(session)
        logger.info("Session created", session_id=str(session_id), expires_at=session.expires_at.isoformat())
        return session

    def get(self, session_id: str) -> CheckoutSession:
        """Get a live session.

        Raises:
            SessionNotFoundError: If the id is unknown or the session expired.
        """
        return self._live_slot(session_id).session

    def delete(self, session_id: str) -> None:
        """Remove a session. Unknown ids are ignored."""
        if self._slots.pop(session_id, None) is not None:
            logger.info("Session deleted", session_id=session_id)
            self._notify_evicted(session_id)

    def on_evict(self, listener: Callable[[str], None]) -> None:
        """Register a callback run with the id of every removed session."""
        self._evict_listeners.append(listener)

    def count(self) -> int:
        """Number of stored sessions, including not-yet-swept expired ones."""
        return len(self._slots)

    def list_sessions(self) -> list[CheckoutSession]:
        """All unexpired sessions."""
        now = self._clock()
        return [slot.session for slot in self._slots.values() if not slot.session.is_expired(now)]

    @asynccontextmanager
    async def lease(self, session_id: str) -> AsyncIterator[CheckoutSession]:
        """Exclusive access to one session for the duration of a mutation.

        After the lock is acquired the slot is checked again: if the
        session was evicted or replaced while waiting, or has expired
        since, the lease fails with ``SessionNotFoundError``. Domain
        events recorded during the lease are logged on exit.

        Raises:
            SessionNotFoundError: If the session is missing or expired.
        """
        slot = self._live_slot(session_id)
        generation = slot.generation
        async with slot.lock:
            current = self._slots.get(session_id)
            if current is not slot or current.generation != generation:
                raise SessionNotFoundError(session_id)
            if slot.session.is_expired(self._clock()):
                self._evict(session_id, slot)
                raise SessionNotFoundError(session_id)
            try:
                yield slot.session
            finally:
                log_domain_events(slot.session)

    # -------------------------------------------------------------------------
    # Expiry
    # -------------------------------------------------------------------------

    def sweep(self) -> int:
        """Evict every expired session whose lock is free.

        Returns:
            Number of sessions evicted.
        """
        now = self._clock()
        expired = [
            (session_id, slot)
            for session_id, slot in self._slots.items()
            if slot.session.is_expired(now) and not slot.lock.locked()
        ]
        for session_id, slot in expired:
            self._evict(session_id, slot)
        if expired:
            logger.info("Expired sessions swept", evicted=len(expired), remaining=len(self._slots))
        return len(expired)

    async def start(self) -> None:
        """Schedule the periodic sweep on the running event loop."""
        if self._scheduler is not None and self._scheduler.running:
            return
        self._scheduler = AsyncIOScheduler(
            executors={"default": AsyncIOExecutor()},
            job_defaults={"coalesce": True, "max_instances": 1},
            timezone="UTC",
        )
        self._sweep_job = self._scheduler.add_job(
            self._run_sweep,
            trigger=IntervalTrigger(seconds=self.sweep_interval_seconds),
            id="session-sweep",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Session sweeper started", interval_seconds=self.sweep_interval_seconds)

    async def stop(self) -> None:
        """Remove the sweep job and shut the scheduler down."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            if self._sweep_job is not None:
                self._sweep_job.remove()
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._sweep_job = None
        logger.info("Session sweeper stopped")

    @property
    def sweeping(self) -> bool:
        """Whether the periodic sweep is scheduled."""
        return self._scheduler is not None and self._scheduler.running

    async def _run_sweep(self) -> None:
        try:
            self.sweep()
        except Exception:
            logger.exception("Session sweep failed")

    def _live_slot(self, session_id: str) -> _Slot:
        slot = self._slots.get(session_id)
        if slot is None:
            raise SessionNotFoundError(session_id)
        if slot.session.is_expired(self._clock()):
            if not slot.lock.locked():
                self._evict(session_id, slot)
            raise SessionNotFoundError(session_id)
        return slot

    def _evict(self, session_id: str, slot: _Slot) -> None:
        if self._slots.get(session_id) is slot:
            del self._slots[session_id]
        slot.session.expire()
        log_domain_events(slot.session)
        logger.info("Session expired", session_id=session_id)
        self._notify_evicted(session_id)

    def _notify_evicted(self, session_id: str) -> None:
        for listener in self._evict_listeners:
            listener(session_id)
