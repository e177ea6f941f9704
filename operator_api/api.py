"""
Operator API Endpoints.

============================================================
PURPOSE
============================================================
HTTP surface for the MID operations page and audit viewer.

ENDPOINTS:
- GET  /health
- GET  /mid/submissions?status=&q=
- GET  /mid/stats
- POST /mid/submissions              {policyId, vrm}
- POST /mid/submissions/{id}/retry
- POST /mid/sync
- GET  /audit?limit=&action=&target=

These are the only operations exposed outside the core.

============================================================
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from aiohttp import web

from audit.ledger import AuditLedger
from core.constants import SYSTEM_NAME, SYSTEM_VERSION
from domain.models import MIDStatus
from registry_sync.engine import RegistrySyncEngine
from registry_sync.scheduler import TriggerScheduler


logger = logging.getLogger(__name__)


# ============================================================
# JSON ENCODER
# ============================================================

class OperatorEncoder(json.JSONEncoder):
    """JSON encoder for operator payloads."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


def json_response(data: Any, status: int = 200) -> web.Response:
    """Create JSON response."""
    return web.Response(
        text=json.dumps(data, cls=OperatorEncoder, indent=2),
        status=status,
        content_type="application/json",
    )


def error_response(message: str, status: int) -> web.Response:
    return json_response({"status": "error", "error": message}, status=status)


# ============================================================
# API HANDLERS
# ============================================================

class OperatorAPI:
    """HTTP handlers over the sync engine and audit ledger."""

    def __init__(
        self,
        engine: RegistrySyncEngine,
        ledger: AuditLedger,
        scheduler: Optional[TriggerScheduler] = None,
    ):
        self._engine = engine
        self._ledger = ledger
        self._scheduler = scheduler

    # --------------------------------------------------------
    # MID SUBMISSIONS
    # --------------------------------------------------------

    async def list_submissions(self, request: web.Request) -> web.Response:
        """
        GET /mid/submissions

        Optional filters: status (Pending, Retrying, Success,
        Failed or All) and q (VRM or policy id substring).
        """
        status = request.query.get("status")
        if status == "All":
            status = None
        if status and status not in {s.value for s in MIDStatus}:
            return error_response(f"Unknown status filter: {status}", 400)

        try:
            submissions = self._engine.search_submissions(status=status, query=request.query.get("q"))
            return json_response({
                "status": "ok",
                "data": [s.to_dict() for s in submissions],
            })
        except Exception as e:
            logger.error(f"Error listing submissions: {e}")
            return error_response(str(e), 500)

    async def get_stats(self, request: web.Request) -> web.Response:
        """GET /mid/stats"""
        try:
            return json_response({
                "status": "ok",
                "data": self._engine.stats().to_dict(),
            })
        except Exception as e:
            logger.error(f"Error computing stats: {e}")
            return error_response(str(e), 500)

    async def enqueue(self, request: web.Request) -> web.Response:
        """
        POST /mid/submissions

        Queue a policy. A duplicate returns 200 with created false
        and the existing submission.
        """
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return error_response("Request body must be JSON", 400)

        if not isinstance(body, dict):
            return error_response("Request body must be a JSON object", 400)

        policy_id = body.get("policyId")
        vrm = body.get("vrm")
        if not policy_id or not vrm:
            return error_response("policyId and vrm are required", 400)

        try:
            created = self._engine.enqueue(str(policy_id), str(vrm).upper())
            if created is not None:
                return json_response({
                    "status": "ok",
                    "data": {"created": True, "submission": created.to_dict()},
                }, status=201)

            existing = self._engine.submission_for_policy(str(policy_id))
            return json_response({
                "status": "ok",
                "data": {
                    "created": False,
                    "submission": existing.to_dict() if existing else None,
                },
            })
        except Exception as e:
            logger.error(f"Error enqueuing {policy_id}: {e}")
            return error_response(str(e), 500)

    async def retry(self, request: web.Request) -> web.Response:
        """
        POST /mid/submissions/{submission_id}/retry

        Re-attempt one submission and wait for the outcome.
        """
        submission_id = request.match_info["submission_id"]

        if self._engine.get_submission(submission_id) is None:
            return error_response(f"Submission {submission_id} not found", 404)

        try:
            if self._scheduler is not None:
                success = await self._scheduler.retry(submission_id)
            else:
                success = await self._engine.retry(submission_id)

            submission = self._engine.get_submission(submission_id)
            return json_response({
                "status": "ok",
                "data": {
                    "success": success,
                    "submission": submission.to_dict() if submission else None,
                },
            })
        except Exception as e:
            logger.error(f"Error retrying {submission_id}: {e}")
            return error_response(str(e), 500)

    async def sync(self, request: web.Request) -> web.Response:
        """
        POST /mid/sync

        Run one processing pass now.
        """
        try:
            if self._scheduler is not None:
                result = await self._scheduler.run_once()
            else:
                result = await self._engine.process_queue()
            return json_response({
                "status": "ok",
                "data": result.to_dict(),
            })
        except Exception as e:
            logger.error(f"Error running sync pass: {e}")
            return error_response(str(e), 500)

    # --------------------------------------------------------
    # AUDIT
    # --------------------------------------------------------

    async def get_audit(self, request: web.Request) -> web.Response:
        """
        GET /audit

        Newest entries first. Optional filters: action, target,
        and limit (default 100).
        """
        try:
            limit = int(request.query.get("limit", 100))
        except ValueError:
            return error_response("limit must be an integer", 400)
        if limit < 1:
            return error_response("limit must be positive", 400)

        action = request.query.get("action")
        target = request.query.get("target")

        try:
            entries = self._ledger.read()
            if action:
                entries = [e for e in entries if e.action == action]
            if target:
                entries = [e for e in entries if e.target_id == target]

            return json_response({
                "status": "ok",
                "data": {
                    "total": len(entries),
                    "entries": [e.to_dict() for e in entries[:limit]],
                },
            })
        except Exception as e:
            logger.error(f"Error reading audit log: {e}")
            return error_response(str(e), 500)

    # --------------------------------------------------------
    # HEALTH CHECK
    # --------------------------------------------------------

    async def health(self, request: web.Request) -> web.Response:
        """GET /health"""
        return json_response({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SYSTEM_NAME,
            "version": SYSTEM_VERSION,
            "scheduler_running": self._scheduler.is_running if self._scheduler else False,
            "processing": self._engine.is_processing,
        })


# ============================================================
# APPLICATION FACTORY
# ============================================================

def create_operator_app(
    engine: RegistrySyncEngine,
    ledger: AuditLedger,
    scheduler: Optional[TriggerScheduler] = None,
) -> web.Application:
    """
    Create operator API application.

    Returns an aiohttp Application with all routes configured.
    """
    api = OperatorAPI(engine, ledger, scheduler)

    app = web.Application()

    app.router.add_get("/health", api.health)
    app.router.add_get("/mid/submissions", api.list_submissions)
    app.router.add_get("/mid/stats", api.get_stats)
    app.router.add_get("/audit", api.get_audit)

    app.router.add_post("/mid/submissions", api.enqueue)
    app.router.add_post("/mid/submissions/{submission_id}/retry", api.retry)
    app.router.add_post("/mid/sync", api.sync)

    return app
