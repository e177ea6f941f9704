"""
Registry Sync - Registry Gateway.

============================================================
PURPOSE
============================================================
Boundary to the national motor insurance registry.

The production registry is not integrated; the simulated
gateway stands in for it with:
- Fixed latency per call
- A pluggable probability source deciding each outcome
- Call tracking for inspection in tests

Every call is fallible. Gateways either return a failed
GatewayResponse or raise TransientGatewayError; the sync
engine records both as a failed attempt.

============================================================
"""

import asyncio
import logging
import random
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional

from core.config import GatewayConfig


logger = logging.getLogger(__name__)


ProbabilitySource = Callable[[], float]
"""Returns a float in [0, 1); a call succeeds when the draw is below the success probability."""

SleepFunction = Callable[[float], Awaitable[None]]


# ============================================================
# RESPONSE
# ============================================================

@dataclass(frozen=True)
class GatewayResponse:
    """Outcome of one registry call."""

    success: bool
    diagnostic: str
    reference: Optional[str] = None


# ============================================================
# GATEWAY INTERFACE
# ============================================================

class RegistryGateway(ABC):
    """Registry submission interface."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway name for logs."""
        pass

    @abstractmethod
    async def submit(self, vrm: str) -> GatewayResponse:
        """
        Report one vehicle to the registry.

        Args:
            vrm: Vehicle registration mark

        Returns:
            GatewayResponse

        Raises:
            TransientGatewayError: On a retryable transport failure
        """
        pass


# ============================================================
# PROBABILITY SOURCES
# ============================================================

class ScriptedProbabilitySource:
    """
    Replays a fixed sequence of draws.

    Once the script is exhausted the fallback is returned; with
    no fallback an exhausted script raises IndexError.
    """

    def __init__(self, draws: Iterable[float], fallback: Optional[float] = None):
        self._draws: List[float] = list(draws)
        self._fallback = fallback
        self._position = 0

    @classmethod
    def always_succeed(cls) -> "ScriptedProbabilitySource":
        return cls([], fallback=0.0)

    @classmethod
    def always_fail(cls) -> "ScriptedProbabilitySource":
        return cls([], fallback=0.999999)

    @property
    def remaining(self) -> int:
        return max(0, len(self._draws) - self._position)

    def __call__(self) -> float:
        if self._position < len(self._draws):
            draw = self._draws[self._position]
            self._position += 1
            return draw
        if self._fallback is None:
            raise IndexError("Scripted probability source exhausted")
        return self._fallback


# ============================================================
# SIMULATED GATEWAY
# ============================================================

class SimulatedRegistryGateway(RegistryGateway):
    """
    In-process stand-in for the registry.

    Usage:
        gateway = SimulatedRegistryGateway(
            GatewayConfig(latency_seconds=0),
            probability_source=ScriptedProbabilitySource([0.1, 0.95]),
        )
        response = await gateway.submit("AB12CDE")
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        probability_source: Optional[ProbabilitySource] = None,
        sleep: Optional[SleepFunction] = None,
    ):
        self._config = config or GatewayConfig()
        self._probability_source = probability_source or random.random
        self._sleep = sleep or asyncio.sleep

        self._call_count = 0
        self._submitted: List[str] = []

    @property
    def name(self) -> str:
        return "simulated-registry"

    @property
    def call_count(self) -> int:
        return self._call_count

    @property
    def submitted_vrms(self) -> List[str]:
        return list(self._submitted)

    async def submit(self, vrm: str) -> GatewayResponse:
        self._call_count += 1
        self._submitted.append(vrm)

        if self._config.latency_seconds > 0:
            await self._sleep(self._config.latency_seconds)

        draw = self._probability_source()

        if draw < self._config.success_probability:
            reference = f"MIDREF-{uuid.uuid4().hex[:10].upper()}"
            logger.debug(f"Registry accepted {vrm} ({reference})")
            return GatewayResponse(
                success=True,
                diagnostic=f"200 OK: {vrm} recorded on the Motor Insurance Database, ref {reference}",
                reference=reference,
            )

        logger.debug(f"Registry rejected {vrm} (draw={draw:.3f})")
        return GatewayResponse(
            success=False,
            diagnostic=f"503 Service Unavailable: registry handshake failed for {vrm}",
        )
