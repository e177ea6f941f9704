"""
Registry Sync.

============================================================
PURPOSE
============================================================
Motor Insurance Database reporting for issued policies.

COMPONENTS:
- RegistrySyncEngine: submission lifecycle and processing
- TriggerScheduler: periodic, change-driven and manual passes
- RegistryGateway: registry boundary (simulated)

============================================================
"""

from .engine import RegistrySyncEngine
from .gateway import (
    GatewayResponse,
    ProbabilitySource,
    RegistryGateway,
    ScriptedProbabilitySource,
    SimulatedRegistryGateway,
)
from .scheduler import TriggerScheduler
from .state_machine import VALID_TRANSITIONS, MIDStateMachine, TransitionGuard
from .types import (
    PROCESSABLE_STATUSES,
    MIDStatus,
    MIDSubmission,
    ProcessQueueResult,
    SubmissionStats,
    UploadOutcome,
)


__all__ = [
    "RegistrySyncEngine",
    "TriggerScheduler",
    "RegistryGateway",
    "SimulatedRegistryGateway",
    "GatewayResponse",
    "ProbabilitySource",
    "ScriptedProbabilitySource",
    "VALID_TRANSITIONS",
    "TransitionGuard",
    "MIDStateMachine",
    "PROCESSABLE_STATUSES",
    "MIDStatus",
    "MIDSubmission",
    "ProcessQueueResult",
    "SubmissionStats",
    "UploadOutcome",
]
