"""
Registry Sync - Trigger Scheduler.

============================================================
PURPOSE
============================================================
Decides when the sync engine runs.

TRIGGERS:
- Periodic: one process_queue() pass every interval
- Policy changes: any change to the policy collection
  enqueues Active policies that have no submission yet
- Operator: retry() and run_once() passthroughs

LIFECYCLE:
- start() creates the background task
- stop() signals it and waits for an in-flight pass to finish,
  so no registry attempt is abandoned half-recorded; the task
  is cancelled only after stop_timeout_seconds

============================================================
"""

import asyncio
import logging
from typing import List, Optional

from core.config import SchedulerConfig
from core.constants import StorageKeys
from domain.models import PolicyStatus
from domain.state_store import DomainStateStore

from .engine import RegistrySyncEngine
from .types import MIDSubmission, ProcessQueueResult


logger = logging.getLogger(__name__)


class TriggerScheduler:
    """Owns the periodic processing task; no other state."""

    def __init__(
        self,
        engine: RegistrySyncEngine,
        domain: DomainStateStore,
        config: Optional[SchedulerConfig] = None,
    ):
        self._engine = engine
        self._domain = domain
        self._config = config or SchedulerConfig()

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def engine(self) -> RegistrySyncEngine:
        return self._engine

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def start(self) -> None:
        """Start the scheduler."""
        if self._running:
            return

        logger.info("Starting MID trigger scheduler...")

        self._domain.subscribe(self._on_domain_change)

        if self._config.scan_on_start:
            created = self.scan_unqueued_policies()
            if created:
                logger.info(f"Queued {len(created)} policies without a submission")

        self._stop_event = asyncio.Event()
        if self._config.enabled:
            self._task = asyncio.create_task(self._periodic_loop())
        else:
            logger.warning("Periodic MID sync disabled, only immediate and manual passes will run")

        self._running = True
        logger.info(f"MID trigger scheduler started (interval {self._config.interval_seconds}s)")

    async def stop(self) -> None:
        """
        Stop the scheduler and wait for in-flight work.

        A pass that is running when stop() is called finishes its
        registry attempts; the loop exits once it returns. The task
        is only cancelled when the pass outlives stop_timeout_seconds.
        """
        if not self._running:
            return

        logger.info("Stopping MID trigger scheduler...")

        self._running = False
        self._domain.unsubscribe(self._on_domain_change)

        if self._stop_event is not None:
            self._stop_event.set()

        if self._task:
            timeout = self._config.stop_timeout_seconds
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
            except asyncio.TimeoutError:
                logger.error(f"MID pass still running after {timeout}s, cancelling it")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None

        await self._engine.drain()

        logger.info("MID trigger scheduler stopped")

    # --------------------------------------------------------
    # TRIGGERS
    # --------------------------------------------------------

    async def _periodic_loop(self) -> None:
        """Background processing loop."""
        interval = self._config.interval_seconds

        while self._running:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self._engine.process_queue()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Fatal for this pass only
                logger.error(f"Periodic MID pass failed: {e}")

    def _on_domain_change(self, key: str) -> None:
        if key != StorageKeys.POLICIES:
            return
        created = self.scan_unqueued_policies()
        if created:
            logger.debug(f"Policy change queued {len(created)} submission(s)")

    def scan_unqueued_policies(self) -> List[MIDSubmission]:
        """Enqueue every Active policy that has no submission."""
        queued = {s.policy_id for s in self._engine.read_submissions()}

        created = []
        for policy in self._domain.list_policies():
            if policy.status != PolicyStatus.ACTIVE or policy.id in queued:
                continue
            submission = self._engine.enqueue(policy.id, policy.vrm or "")
            if submission is not None:
                created.append(submission)
        return created

    # --------------------------------------------------------
    # OPERATOR PASSTHROUGHS
    # --------------------------------------------------------

    async def retry(self, submission_id: str) -> bool:
        return await self._engine.retry(submission_id)

    async def run_once(self) -> ProcessQueueResult:
        """Run one pass now (the operator's manual sync)."""
        return await self._engine.process_queue()
