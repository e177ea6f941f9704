"""
Registry Sync Engine.

============================================================
PURPOSE
============================================================
Reports issued policies to the national motor insurance
registry and tracks each report as a MIDSubmission.

FLOW:
1. enqueue() creates one Pending submission per policy
2. process_queue() uploads Pending/Retrying submissions one
   at a time, in read order
3. perform_upload() settles each attempt as Success or Failed
   and mirrors Success onto the policy
4. retry() lets an operator re-attempt a single submission;
   its outcome entry is the only audit entry it writes

CONCURRENCY:
- A single boolean guard makes process_queue() single-flight;
  an overlapping call returns a skipped result immediately
- The guard is checked and set without awaiting, so it is
  race-free on one event loop
- A pass re-reads each submission right before its upload and
  skips it once settled, so an operator retry that finished
  first is never reported again
- At most one registry call per submission is in flight; a
  retry or upload of a submission already at the registry
  waits for that call instead of sending a second one

ERROR HANDLING:
- Registry failures (failed response, TransientGatewayError,
  timeout) become a Failed attempt plus an audit entry
- Storage errors propagate to the caller

============================================================
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Set, Union

from audit.ledger import AuditLedger
from audit.models import Actor, AuditAction
from core.clock import ClockProtocol, SystemClock
from core.config import PortalConfig
from core.constants import SUBMISSION_ID_PREFIX, StorageKeys
from core.exceptions import (
    DuplicateEnqueueError,
    InvalidTransitionError,
    NotFoundError,
    TransientGatewayError,
)
from domain.models import MIDStatus
from domain.state_store import DomainStateStore
from storage.base import KeyValueStore
from storage.repositories.collection import CollectionRepository

from .gateway import GatewayResponse, RegistryGateway
from .state_machine import MIDStateMachine
from .types import (
    MIDSubmission,
    ProcessQueueResult,
    SubmissionStats,
    UploadOutcome,
)


logger = logging.getLogger(__name__)


class RegistrySyncEngine:
    """
    Owner of the mid_submissions collection.

    Usage:
        engine = RegistrySyncEngine(store, ledger, domain, gateway)
        engine.enqueue("POL-1", "AB12CDE")
        result = await engine.process_queue()
    """

    def __init__(
        self,
        store: KeyValueStore,
        ledger: AuditLedger,
        domain: DomainStateStore,
        gateway: RegistryGateway,
        clock: Optional[ClockProtocol] = None,
        config: Optional[PortalConfig] = None,
    ):
        """
        Initialize engine.

        Args:
            store: Backing key-value store
            ledger: Audit sink
            domain: Policy owner, used to mirror midStatus
            gateway: Registry boundary
            clock: Timestamp source
            config: Portal configuration
        """
        self._ledger = ledger
        self._domain = domain
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._config = config or PortalConfig()

        self._submissions = CollectionRepository(
            store,
            StorageKeys.MID_SUBMISSIONS,
            self._config.storage.max_cas_retries,
        )

        # Single-flight guard for process_queue()
        self._processing = False

        self._kick_tasks: Set[asyncio.Task] = set()

        # Submission id -> future resolved with that attempt's UploadOutcome
        self._in_flight: Dict[str, asyncio.Future] = {}

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def gateway(self) -> RegistryGateway:
        return self._gateway

    def _now_iso(self) -> str:
        return self._clock.now().isoformat()

    # ========================================================
    # ENQUEUE
    # ========================================================

    def enqueue(self, policy_id: str, vrm: str) -> Optional[MIDSubmission]:
        """
        Queue a policy for registry reporting.

        A policy that already has a submission is left alone.

        Returns:
            The created submission, or None for a duplicate
        """
        candidate = MIDSubmission(
            id=f"{SUBMISSION_ID_PREFIX}{uuid.uuid4().hex[:8].upper()}",
            policy_id=policy_id,
            vrm=vrm,
            status=MIDStatus.PENDING,
            submitted_at=self._now_iso(),
        )

        def insert(records):
            for record in records:
                if record.get("policyId") == policy_id:
                    raise DuplicateEnqueueError(policy_id, record.get("id", "?"))
            return records + [candidate.to_dict()], candidate

        try:
            submission = self._submissions.mutate(insert)
        except DuplicateEnqueueError as e:
            logger.debug(f"Enqueue ignored: {e.message}")
            return None

        self._ledger.append(
            AuditAction.MID_QUEUED,
            f"Policy {policy_id} ({vrm}) queued for MID reporting as {submission.id}",
            target_id=submission.id,
        )
        logger.info(f"Queued {submission.id} for policy {policy_id} ({vrm})")

        if self._config.scheduler.kick_on_enqueue:
            self._kick()

        return submission

    def _kick(self) -> None:
        """Start a processing pass now instead of waiting for the next period."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, submission left for the periodic pass")
            return

        task = loop.create_task(self._kick_pass())
        self._kick_tasks.add(task)
        task.add_done_callback(self._kick_tasks.discard)

    async def _kick_pass(self) -> None:
        try:
            await self.process_queue()
        except Exception:
            # Fatal for this pass only; the periodic pass tries again
            logger.exception("Immediate processing pass failed")

    async def drain(self) -> None:
        """Wait for outstanding immediate passes."""
        while self._kick_tasks:
            await asyncio.gather(*list(self._kick_tasks), return_exceptions=True)

    # ========================================================
    # PROCESSING
    # ========================================================

    async def process_queue(self) -> ProcessQueueResult:
        """
        Upload every Pending or Retrying submission, sequentially.

        Each submission is re-read just before its upload, so one
        settled or picked up by an operator retry since the pass
        started is skipped.

        Returns:
            ProcessQueueResult; skipped when a pass is already running

        Raises:
            BackingStoreError: On storage failure
        """
        result = ProcessQueueResult(
            run_id=uuid.uuid4().hex[:12],
            started_at=self._clock.now(),
        )

        if self._processing:
            logger.debug(f"Pass {result.run_id} skipped, another pass is in flight")
            result.skipped = True
            result.completed_at = self._clock.now()
            return result

        self._processing = True
        try:
            queued_ids = [s.id for s in self.read_submissions() if s.is_processable]
            if queued_ids:
                logger.info(f"Pass {result.run_id}: {len(queued_ids)} submission(s) to report")

            for submission_id in queued_ids:
                if submission_id in self._in_flight:
                    logger.debug(f"{submission_id} is already at the registry, skipped")
                    continue

                current = self.get_submission(submission_id)
                if current is None or not current.is_processable:
                    logger.debug(f"{submission_id} settled since the pass started, skipped")
                    continue

                outcome = await self.perform_upload(current)
                result.outcomes.append(outcome)
        finally:
            self._processing = False

        result.completed_at = self._clock.now()

        if result.attempted:
            logger.info(
                f"Pass {result.run_id} complete: "
                f"{result.succeeded} succeeded, {result.failed} failed"
            )

        return result

    async def _call_gateway(self, vrm: str) -> GatewayResponse:
        timeout = self._config.gateway.timeout_seconds
        try:
            return await asyncio.wait_for(self._gateway.submit(vrm), timeout=timeout)
        except TransientGatewayError as e:
            logger.warning(f"Registry call for {vrm} failed: {e.message}")
            return GatewayResponse(success=False, diagnostic=f"Transient gateway error: {e.message}")
        except asyncio.TimeoutError:
            logger.warning(f"Registry call for {vrm} timed out after {timeout}s")
            return GatewayResponse(
                success=False,
                diagnostic=f"504 Gateway Timeout: no registry response within {timeout}s",
            )

    async def perform_upload(
        self,
        submission: MIDSubmission,
        requested_by: Optional[Actor] = None,
    ) -> UploadOutcome:
        """
        Run one registry attempt and persist its outcome.

        At most one attempt per submission is at the registry at a
        time; a second caller waits for that attempt and shares its
        outcome.

        Args:
            submission: Submission to report
            requested_by: Operator who asked for the attempt; the
                outcome entry is attributed to the system otherwise

        Raises:
            NotFoundError: Submission no longer exists
            InvalidTransitionError: Submission is already settled
            BackingStoreError: On storage failure
        """
        running = self._in_flight.get(submission.id)
        if running is not None:
            return await self._join_attempt(submission.id, running)

        current = self.get_submission(submission.id)
        if current is None:
            raise NotFoundError(submission.id)
        if not current.is_processable:
            raise InvalidTransitionError(
                current.id,
                current.status.value,
                "upload",
                "only Pending or Retrying submissions are uploaded",
            )

        attempt: asyncio.Future = asyncio.get_running_loop().create_future()
        self._in_flight[current.id] = attempt
        outcome: Optional[UploadOutcome] = None
        try:
            outcome = await self._upload(current, requested_by)
            return outcome
        finally:
            del self._in_flight[current.id]
            attempt.set_result(outcome)

    async def _join_attempt(self, submission_id: str, running: asyncio.Future) -> UploadOutcome:
        logger.info(f"{submission_id} is already at the registry, waiting for that attempt")
        outcome = await asyncio.shield(running)
        if outcome is None:
            return UploadOutcome(
                submission=self.get_submission(submission_id),
                success=False,
                diagnostic="Concurrent attempt ended without a recorded outcome",
            )
        return outcome

    async def _upload(self, submission: MIDSubmission, requested_by: Optional[Actor]) -> UploadOutcome:
        response = await self._call_gateway(submission.vrm)
        attempted_at = self._now_iso()

        def settle(records):
            for record in records:
                if record.get("id") != submission.id:
                    continue

                current = MIDSubmission.from_dict(record)
                if not current.is_processable:
                    return None, None

                machine = MIDStateMachine(current)
                if response.success:
                    machine.mark_success(attempted_at, response.diagnostic)
                else:
                    machine.mark_failed(attempted_at, response.diagnostic)

                record.clear()
                record.update(current.to_dict())
                return records, current

            return None, None

        updated = self._submissions.mutate(settle)

        if updated is None:
            logger.warning(
                f"{submission.id} was settled or removed by another writer during upload, "
                f"outcome not recorded"
            )
            return UploadOutcome(submission=submission, success=response.success, diagnostic=response.diagnostic)

        actor = requested_by or self._ledger.system_actor
        prefix = "Manual retry: " if requested_by is not None else ""
        policy_updated = False

        if response.success:
            policy_updated = self._domain.record_mid_status(updated.policy_id, MIDStatus.SUCCESS)
            if not policy_updated:
                logger.warning(f"Policy {updated.policy_id} no longer exists, midStatus not mirrored")

            self._ledger.append(
                AuditAction.MID_TX_SUCCESS,
                f"{prefix}MID registry confirmed {updated.vrm} for policy {updated.policy_id}",
                target_id=updated.id,
                actor=actor,
            )
            logger.info(f"{updated.id} reported ({updated.vrm})")
        else:
            self._ledger.append(
                AuditAction.MID_TX_FAILURE,
                f"{prefix}MID upload failed for {updated.vrm} (policy {updated.policy_id}), "
                f"failure #{updated.retry_count}: {response.diagnostic}",
                target_id=updated.id,
                actor=actor,
            )
            logger.warning(f"{updated.id} failed ({updated.vrm}), retry count {updated.retry_count}")

        return UploadOutcome(
            submission=updated,
            success=response.success,
            diagnostic=response.diagnostic,
            policy_updated=policy_updated,
        )

    # ========================================================
    # OPERATOR RETRY
    # ========================================================

    async def retry(self, submission_id: str) -> bool:
        """
        Re-attempt one submission immediately, outside any pass.

        The attempt's MID_TX entry is attributed to the operator
        and is the only entry the retry writes. A submission that
        is already at the registry is not sent again; the retry
        waits for that attempt instead.

        Returns:
            Whether the attempt succeeded; False for an unknown id,
            in which case nothing is written or audited
        """
        operator = self._ledger.current_actor()

        running = self._in_flight.get(submission_id)
        if running is not None:
            outcome = await self._join_attempt(submission_id, running)
            return outcome.success

        def reopen(records):
            for record in records:
                if record.get("id") == submission_id:
                    current = MIDSubmission.from_dict(record)
                    MIDStateMachine(current).mark_retrying()
                    record.clear()
                    record.update(current.to_dict())
                    return records, current
            raise NotFoundError(submission_id)

        try:
            submission = self._submissions.mutate(reopen)
        except NotFoundError as e:
            logger.warning(f"Retry rejected: {e.message}")
            return False

        logger.info(f"Manual retry of {submission.id} ({submission.vrm}) by {operator.id}")

        outcome = await self.perform_upload(submission, requested_by=operator)
        return outcome.success

    # ========================================================
    # QUERIES
    # ========================================================

    def read_submissions(self) -> List[MIDSubmission]:
        return [MIDSubmission.from_dict(r) for r in self._submissions.load()]

    def get_submission(self, submission_id: str) -> Optional[MIDSubmission]:
        record = self._submissions.find_by_id(submission_id)
        return MIDSubmission.from_dict(record) if record else None

    def submission_for_policy(self, policy_id: str) -> Optional[MIDSubmission]:
        record = self._submissions.find(lambda r: r.get("policyId") == policy_id)
        return MIDSubmission.from_dict(record) if record else None

    def search_submissions(
        self,
        status: Optional[Union[MIDStatus, str]] = None,
        query: Optional[str] = None,
    ) -> List[MIDSubmission]:
        """
        Filter by status and by a case-insensitive VRM or policy id substring.
        """
        wanted = MIDStatus(status) if status else None
        needle = query.strip().lower() if query else ""

        matches = []
        for submission in self.read_submissions():
            if wanted is not None and submission.status != wanted:
                continue
            if needle and needle not in submission.vrm.lower() and needle not in submission.policy_id.lower():
                continue
            matches.append(submission)
        return matches

    def stats(self) -> SubmissionStats:
        stats = SubmissionStats()
        for submission in self.read_submissions():
            stats.total += 1
            if submission.status == MIDStatus.SUCCESS:
                stats.success += 1
            elif submission.status == MIDStatus.FAILED:
                stats.failed += 1
            else:
                stats.pending += 1
        return stats

    def get_status(self) -> Dict[str, Any]:
        return {
            "gateway": self._gateway.name,
            "processing": self._processing,
            "pending_kicks": len(self._kick_tasks),
            "in_flight": sorted(self._in_flight),
            "submissions": self.stats().to_dict(),
        }
