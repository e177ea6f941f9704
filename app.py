#!/usr/bin/env python3
"""
SwiftPolicy Portal - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Runs the MID registry sync service with its operator API.

- Wires store -> ledger -> domain -> gateway -> engine ->
  scheduler -> API into one runtime
- Handles SIGINT/SIGTERM gracefully
- --once runs a single scan and pass, then exits

============================================================
USAGE
============================================================
Direct execution:
    python app.py --db-url sqlite:///swiftpolicy.db

One pass against an in-memory store:
    python app.py --memory --once

Environment-based configuration (.env supported):
    SWIFTPOLICY_MID_SYNC_INTERVAL_SECONDS=15 python app.py

============================================================
"""

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from typing import List, Optional

from aiohttp import web

from audit.ledger import AuditLedger
from core.clock import ClockProtocol, SystemClock
from core.config import PortalConfig
from core.constants import SYSTEM_NAME, SYSTEM_VERSION
from core.exceptions import ConfigurationError
from domain.identity import SessionIdentity
from domain.state_store import DomainStateStore
from operator_api.api import create_operator_app
from registry_sync.engine import RegistrySyncEngine
from registry_sync.gateway import RegistryGateway, SimulatedRegistryGateway
from registry_sync.scheduler import TriggerScheduler
from storage.base import KeyValueStore
from storage.memory import InMemoryKeyValueStore
from storage.sqlalchemy_store import SqlAlchemyKeyValueStore


logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog=SYSTEM_NAME,
        description="Motor Insurance Database sync service and operator API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                               # Run with settings from the environment
  %(prog)s --memory --once               # One pass against an empty in-memory store
  %(prog)s --interval 10 --port 9000     # Faster passes, custom API port
        """,
    )

    storage_group = parser.add_argument_group("Storage Options")
    storage_group.add_argument(
        "--db-url",
        type=str,
        default=None,
        help="SQLAlchemy database URL (default: from environment)",
    )
    storage_group.add_argument(
        "--memory",
        action="store_true",
        help="Use a non-persistent in-memory store",
    )

    sync_group = parser.add_argument_group("Sync Options")
    sync_group.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between processing passes",
    )
    sync_group.add_argument(
        "--success-probability",
        type=float,
        default=None,
        help="Simulated registry success probability in [0, 1]",
    )
    sync_group.add_argument(
        "--once",
        action="store_true",
        help="Queue un-synced policies, run one pass and exit",
    )

    api_group = parser.add_argument_group("API Options")
    api_group.add_argument("--host", type=str, default=None, help="Operator API bind host")
    api_group.add_argument("--port", type=int, default=None, help="Operator API port")
    api_group.add_argument("--no-api", action="store_true", help="Do not start the operator API")

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: from environment, else INFO)",
    )

    return parser


def build_config(args: argparse.Namespace, base: Optional[PortalConfig] = None) -> PortalConfig:
    """Overlay CLI arguments on the environment configuration."""
    config = base or PortalConfig.from_env()

    if args.db_url:
        config.storage.database_url = args.db_url
    if args.memory:
        config.storage.use_memory = True
    if args.interval is not None:
        config.scheduler.interval_seconds = args.interval
    if args.success_probability is not None:
        config.gateway.success_probability = args.success_probability
    if args.host:
        config.api.host = args.host
    if args.port is not None:
        config.api.port = args.port
    if args.no_api:
        config.api.enabled = False
    if args.log_level:
        config.logging.level = args.log_level

    return config


def setup_logging(config: PortalConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format=config.logging.format,
    )


# ============================================================
# RUNTIME WIRING
# ============================================================

@dataclass
class PortalRuntime:
    """Every long-lived component, constructed once per process."""

    config: PortalConfig
    store: KeyValueStore
    ledger: AuditLedger
    identity: SessionIdentity
    domain: DomainStateStore
    gateway: RegistryGateway
    engine: RegistrySyncEngine
    scheduler: TriggerScheduler

    def close(self) -> None:
        self.store.close()


def create_store(config: PortalConfig) -> KeyValueStore:
    if config.storage.use_memory:
        logger.info("Using in-memory store (nothing is persisted)")
        return InMemoryKeyValueStore()

    store = SqlAlchemyKeyValueStore(config.storage)
    store.create_tables()
    logger.info(f"Using database store at {config.storage.database_url}")
    return store


def build_runtime(
    config: PortalConfig,
    store: Optional[KeyValueStore] = None,
    gateway: Optional[RegistryGateway] = None,
    clock: Optional[ClockProtocol] = None,
) -> PortalRuntime:
    """
    Wire all components.

    Args:
        config: Portal configuration
        store: Backing store; built from config when omitted
        gateway: Registry gateway; simulated when omitted
        clock: Timestamp source
    """
    clock = clock or SystemClock()
    store = store or create_store(config)

    identity = SessionIdentity(store)
    ledger = AuditLedger(
        store,
        config=config.audit,
        clock=clock,
        actor_provider=identity.current_actor,
        max_cas_retries=config.storage.max_cas_retries,
    )
    domain = DomainStateStore(store, ledger, clock=clock, config=config.storage, identity=identity)
    gateway = gateway or SimulatedRegistryGateway(config.gateway)
    engine = RegistrySyncEngine(store, ledger, domain, gateway, clock=clock, config=config)
    scheduler = TriggerScheduler(engine, domain, config.scheduler)

    return PortalRuntime(
        config=config,
        store=store,
        ledger=ledger,
        identity=identity,
        domain=domain,
        gateway=gateway,
        engine=engine,
        scheduler=scheduler,
    )


def print_banner(config: PortalConfig) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print(f"  SWIFTPOLICY PORTAL v{SYSTEM_VERSION}")
    print("  MID Registry Sync Service")
    print("=" * 60)
    print(f"  Store:       {'memory' if config.storage.use_memory else config.storage.database_url}")
    print(f"  Interval:    {config.scheduler.interval_seconds}s")
    print(f"  Success p:   {config.gateway.success_probability}")
    if config.api.enabled:
        print(f"  API:         http://{config.api.host}:{config.api.port}")
    else:
        print("  API:         disabled")
    print(f"  Log Level:   {config.logging.level}")
    print("=" * 60)
    print()


# ============================================================
# RUN MODES
# ============================================================

async def run_once(runtime: PortalRuntime) -> int:
    """Scan, run one pass, wait for immediate passes and print a summary."""
    created = runtime.scheduler.scan_unqueued_policies()
    result = await runtime.scheduler.run_once()
    await runtime.engine.drain()

    stats = runtime.engine.stats()

    print(f"\nQueued:     {len(created)}")
    print(f"Attempted:  {result.attempted}{' (skipped, pass in flight)' if result.skipped else ''}")
    print(f"Succeeded:  {result.succeeded}")
    print(f"Failed:     {result.failed}")
    print(f"Totals:     {stats.total} submissions, {stats.success} success, "
          f"{stats.failed} failed, {stats.pending} pending")

    return 0


async def run_service(runtime: PortalRuntime) -> int:
    """Run until SIGINT/SIGTERM."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    installed: List[signal.Signals] = []
    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
            installed.append(sig)

    runner: Optional[web.AppRunner] = None

    try:
        await runtime.scheduler.start()

        if runtime.config.api.enabled:
            app = create_operator_app(runtime.engine, runtime.ledger, runtime.scheduler)
            runner = web.AppRunner(app)
            await runner.setup()
            site = web.TCPSite(runner, runtime.config.api.host, runtime.config.api.port)
            await site.start()
            logger.info(
                f"Operator API started at http://{runtime.config.api.host}:{runtime.config.api.port}"
            )

        logger.info("Service running (press Ctrl+C to stop)...")
        await stop_event.wait()
        logger.info("Shutdown requested")
        return 0

    finally:
        if runner is not None:
            await runner.cleanup()
        await runtime.scheduler.stop()
        for sig in installed:
            loop.remove_signal_handler(sig)


async def run_application(config: PortalConfig, once: bool = False) -> int:
    """
    Run the service.

    Returns:
        Exit code
    """
    runtime = build_runtime(config)

    try:
        if once:
            return await run_once(runtime)
        return await run_service(runtime)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        runtime.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(config)
    print_banner(config)

    return asyncio.run(run_application(config, once=args.once))


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
