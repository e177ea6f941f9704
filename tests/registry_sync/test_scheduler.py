"""
Trigger Scheduler Tests.

============================================================
PURPOSE
============================================================
Tests for periodic, change-driven and manual sync triggers.

============================================================
"""

import asyncio

import pytest

from audit.ledger import AuditLedger
from audit.models import AuditAction
from core.clock import MockClock
from core.config import PortalConfig, SchedulerConfig
from domain.models import MIDStatus, PolicyStatus
from domain.state_store import DomainStateStore
from registry_sync.engine import RegistrySyncEngine
from registry_sync.gateway import ScriptedProbabilitySource, SimulatedRegistryGateway
from registry_sync.scheduler import TriggerScheduler
from storage.memory import InMemoryKeyValueStore


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def config():
    config = PortalConfig()
    config.gateway.latency_seconds = 0
    config.scheduler.kick_on_enqueue = False
    config.scheduler.interval_seconds = 0.02
    return config


@pytest.fixture
def clock():
    return MockClock(tick_seconds=1.0)


@pytest.fixture
def ledger(store, clock):
    return AuditLedger(store, clock=clock)


@pytest.fixture
def domain(store, ledger, clock):
    return DomainStateStore(store, ledger, clock=clock)


@pytest.fixture
def engine(store, ledger, domain, config):
    gateway = SimulatedRegistryGateway(
        config.gateway,
        probability_source=ScriptedProbabilitySource.always_succeed(),
    )
    return RegistrySyncEngine(store, ledger, domain, gateway, config=config)


@pytest.fixture
def scheduler(engine, domain, config):
    return TriggerScheduler(engine, domain, config.scheduler)


def _issue(domain, vrm="AB12CDE"):
    user = domain.register_user(f"Driver {vrm}", f"{vrm.lower()}@example.com")
    return domain.issue_policy(user.id, "Comprehensive", "£500.00", vrm)


# ============================================================
# LIFECYCLE
# ============================================================

class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler):
        """Test the running flag follows start and stop."""
        assert scheduler.is_running is False

        await scheduler.start()
        assert scheduler.is_running is True

        await scheduler.stop()
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, scheduler):
        """Test stop can be called repeatedly."""
        await scheduler.start()
        await scheduler.stop()
        await scheduler.stop()

        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task(self, scheduler):
        """Test a second start does not create a second loop."""
        await scheduler.start()
        task = scheduler._task
        await scheduler.start()

        assert scheduler._task is task
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_ends_periodic_task(self, scheduler):
        """Test no periodic task survives stop."""
        await scheduler.start()
        task = scheduler._task

        await scheduler.stop()

        assert task.done()
        assert scheduler._task is None

    @pytest.mark.asyncio
    async def test_stop_waits_for_upload_in_flight(self, store, ledger, domain, config):
        """Test stopping during a registry call records that attempt first."""
        entered = asyncio.Event()

        async def slow_sleep(seconds):
            entered.set()
            await asyncio.sleep(seconds)

        config.gateway.latency_seconds = 0.1
        config.scheduler.interval_seconds = 0.01
        gateway = SimulatedRegistryGateway(
            config.gateway,
            probability_source=ScriptedProbabilitySource.always_succeed(),
            sleep=slow_sleep,
        )
        engine = RegistrySyncEngine(store, ledger, domain, gateway, config=config)
        scheduler = TriggerScheduler(engine, domain, config.scheduler)
        submission = engine.enqueue("POL-1", "AB12CDE")

        await scheduler.start()
        await asyncio.wait_for(entered.wait(), timeout=2.0)
        await scheduler.stop()

        updated = engine.get_submission(submission.id)
        assert gateway.submitted_vrms == ["AB12CDE"]
        assert updated.status == MIDStatus.SUCCESS
        assert updated.last_attempt_at is not None
        assert len(ledger.read_by_action(AuditAction.MID_TX_SUCCESS)) == 1
        assert engine.is_processing is False

    @pytest.mark.asyncio
    async def test_stop_cancels_pass_after_timeout(self, store, ledger, domain, config):
        """Test a pass that outlives the stop timeout is cancelled."""
        entered = asyncio.Event()

        async def hanging_sleep(seconds):
            entered.set()
            await asyncio.sleep(seconds)

        config.gateway.latency_seconds = 5
        config.gateway.timeout_seconds = 10
        config.scheduler.interval_seconds = 0.01
        config.scheduler.stop_timeout_seconds = 0.05
        gateway = SimulatedRegistryGateway(
            config.gateway,
            probability_source=ScriptedProbabilitySource.always_succeed(),
            sleep=hanging_sleep,
        )
        engine = RegistrySyncEngine(store, ledger, domain, gateway, config=config)
        scheduler = TriggerScheduler(engine, domain, config.scheduler)
        submission = engine.enqueue("POL-1", "AB12CDE")

        await scheduler.start()
        task = scheduler._task
        await asyncio.wait_for(entered.wait(), timeout=2.0)
        await scheduler.stop()

        assert task.done()
        assert scheduler._task is None
        assert engine.is_processing is False
        assert engine.get_submission(submission.id).status == MIDStatus.PENDING

    @pytest.mark.asyncio
    async def test_disabled_periodic_pass(self, engine, domain):
        """Test no background task is created when disabled."""
        scheduler = TriggerScheduler(engine, domain, SchedulerConfig(enabled=False))

        await scheduler.start()

        assert scheduler._task is None
        assert scheduler.is_running is True
        await scheduler.stop()


# ============================================================
# TRIGGERS
# ============================================================

class TestTriggers:
    """Tests for periodic and change-driven triggers."""

    @pytest.mark.asyncio
    async def test_periodic_pass_processes_queue(self, scheduler, engine):
        """Test the periodic loop settles queued submissions."""
        submission = engine.enqueue("POL-1", "AB12CDE")

        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert engine.get_submission(submission.id).status == MIDStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_no_passes_after_stop(self, scheduler, engine):
        """Test work queued after stop is not picked up."""
        await scheduler.start()
        await scheduler.stop()

        submission = engine.enqueue("POL-1", "AB12CDE")
        await asyncio.sleep(0.06)

        assert engine.get_submission(submission.id).status == MIDStatus.PENDING

    @pytest.mark.asyncio
    async def test_initial_scan_on_start(self, scheduler, engine, domain):
        """Test policies issued before start are queued by the start-up scan."""
        policy = _issue(domain)

        await scheduler.start()
        try:
            assert engine.submission_for_policy(policy.id) is not None
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_policy_change_triggers_enqueue(self, scheduler, engine, domain):
        """Test issuing a policy while running queues it."""
        await scheduler.start()
        try:
            policy = _issue(domain, "XY99ZZZ")

            submission = engine.submission_for_policy(policy.id)
            assert submission is not None
            assert submission.vrm == "XY99ZZZ"
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_unsubscribed_after_stop(self, scheduler, engine, domain):
        """Test policy changes after stop are not queued."""
        await scheduler.start()
        await scheduler.stop()

        policy = _issue(domain)

        assert engine.submission_for_policy(policy.id) is None

    def test_scan_skips_inactive_and_queued(self, scheduler, engine, domain):
        """Test only Active policies without a submission are queued."""
        queued = _issue(domain, "AA11AAA")
        frozen = _issue(domain, "BB22BBB")
        fresh = _issue(domain, "CC33CCC")
        engine.enqueue(queued.id, "AA11AAA")
        domain.update_policy_status(frozen.id, PolicyStatus.FROZEN)

        created = scheduler.scan_unqueued_policies()

        assert [s.policy_id for s in created] == [fresh.id]
        assert engine.submission_for_policy(frozen.id) is None
        assert scheduler.scan_unqueued_policies() == []

    @pytest.mark.asyncio
    async def test_periodic_failure_does_not_stop_loop(self, scheduler, engine, store):
        """Test a failing pass is logged and the loop keeps running."""
        await scheduler.start()
        store.fail_on_read.add("mid_submissions")
        await asyncio.sleep(0.06)

        assert scheduler._task is not None
        assert not scheduler._task.done()

        store.fail_on_read.clear()
        await scheduler.stop()


# ============================================================
# OPERATOR PASSTHROUGHS
# ============================================================

class TestPassthroughs:
    """Tests for retry and run_once."""

    @pytest.mark.asyncio
    async def test_run_once(self, scheduler, engine):
        """Test a manual pass settles queued work."""
        engine.enqueue("POL-1", "AB12CDE")

        result = await scheduler.run_once()

        assert result.succeeded == 1

    @pytest.mark.asyncio
    async def test_retry(self, scheduler, engine):
        """Test retry delegates to the engine."""
        submission = engine.enqueue("POL-1", "AB12CDE")

        assert await scheduler.retry(submission.id) is True
        assert await scheduler.retry("nonexistent-id") is False
