"""Scan service - the boundary between callers and the scan engine.

Wires the engine to collaborators it does not own:
  - PermissionChecker: quota, cooldown and rate limits
  - PlanLookup: the caller's subscription tier
  - AdminClaim: whether the caller holds the admin entitlement

Each call returns a ScanOutcome carrying the status code, the result or the
error, and the ordered audit events for the caller to store.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from shieldscan.util.config import Config
from shieldscan.util.errors import ScanInputError, ShieldScanError
from shieldscan.util.time import iso_now
from shieldscan.util.types import PlanTier, ScanRequest, ScanResult
from shieldscan.scanner.validation import validate_target
from shieldscan.scanner.runner import ScanRunner

logger = logging.getLogger(__name__)

SCAN_INITIATED = 'scan.initiated'
SCAN_COMPLETED = 'scan.completed'
SCAN_LIMIT_REACHED = 'scan.limit.reached'
SCAN_RATE_LIMITED = 'scan.rate_limited'
SCAN_FAILED = 'scan.failed'


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    status_code: int = 200
    scans_remaining: Optional[int] = None
    reset_date: Optional[str] = None
    error: Optional[str] = None


class PermissionChecker(Protocol):
    async def check(self, user_id: Optional[str], user_email: Optional[str],
                    request_meta: Dict[str, Any]) -> PermissionDecision:
        ...


class PlanLookup(Protocol):
    async def plan_for(self, user_id: str) -> Optional[PlanTier]:
        ...


class AdminClaim(Protocol):
    def is_admin(self, request: ScanRequest) -> bool:
        ...


@dataclass(frozen=True)
class AuditEvent:
    name: str
    user_id: Optional[str]
    user_email: Optional[str]
    url: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=iso_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'user_id': self.user_id,
            'user_email': self.user_email,
            'url': self.url,
            'metadata': self.metadata,
            'timestamp': self.timestamp,
        }


@dataclass
class ScanOutcome:
    """What the caller gets back from ScanService.run."""
    success: bool
    status_code: int
    result: Optional[ScanResult] = None
    error: Optional[str] = None
    scans_remaining: Optional[int] = None
    reset_date: Optional[str] = None
    is_admin: bool = False
    events: List[AuditEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'status_code': self.status_code,
            'data': self.result.to_dict() if self.result else None,
            'error': self.error,
            'scans_remaining': self.scans_remaining,
            'reset_date': self.reset_date,
            'is_admin': self.is_admin,
            'events': [e.to_dict() for e in self.events],
        }


class ScanService:
    """Runs scans on behalf of a user, consulting injected collaborators.

    Every collaborator is optional. Without a permission checker every scan
    is allowed; without a plan lookup the declared plan is used; without an
    admin claim only `is_admin_override` grants admin.
    """

    def __init__(
        self,
        permission_checker: Optional[PermissionChecker] = None,
        plan_lookup: Optional[PlanLookup] = None,
        admin_claim: Optional[AdminClaim] = None,
        runner_factory: Optional[Callable[[], ScanRunner]] = None,
        config: Optional[Config] = None,
    ):
        self.permission_checker = permission_checker
        self.plan_lookup = plan_lookup
        self.admin_claim = admin_claim
        self.config = config or Config()
        self.runner_factory = runner_factory or (lambda: ScanRunner(self.config))

    async def run(self, request: ScanRequest) -> ScanOutcome:
        """Check permission, resolve plan and admin status, then scan.

        Input errors return 400 before any collaborator is consulted.
        Unexpected errors are caught here once and returned as 500.
        """
        events: List[AuditEvent] = []

        def record(name: str, url: str, **metadata):
            # Audit trail needs an identified user
            if request.user_id and request.user_email:
                events.append(AuditEvent(name, request.user_id, request.user_email, url, metadata))

        try:
            url = validate_target(request.url)
        except ScanInputError as e:
            logger.info(f"Rejected scan request: {e}")
            return ScanOutcome(success=False, status_code=e.status_code, error=str(e))

        decision = PermissionDecision(allowed=True)
        if self.permission_checker is not None:
            try:
                decision = await self.permission_checker.check(
                    request.user_id, request.user_email, request.request_meta
                )
            except Exception as e:
                record(SCAN_FAILED, url, error=str(e))
                logger.exception(f"Permission check failed for {request.user_id}")
                return ScanOutcome(success=False, status_code=500, error=f"Scan failed: {e}", events=events)

        if not decision.allowed:
            if decision.status_code == 403:
                record(SCAN_LIMIT_REACHED, url)
            elif decision.status_code == 429:
                record(SCAN_RATE_LIMITED, url)
            logger.info(f"Scan not allowed for {request.user_id}: {decision.status_code}")
            return ScanOutcome(
                success=False,
                status_code=decision.status_code,
                error=decision.error or 'Scan not allowed',
                scans_remaining=decision.scans_remaining,
                reset_date=decision.reset_date,
                events=events,
            )

        plan = await self._resolve_plan(request)
        is_admin = request.is_admin_override or bool(
            self.admin_claim and self.admin_claim.is_admin(request)
        )
        record(SCAN_INITIATED, url, plan=plan.value)

        scan_request = ScanRequest(
            url=url,
            plan=plan,
            is_admin_override=is_admin,
            auth=request.auth,
            user_id=request.user_id,
            user_email=request.user_email,
            request_meta=request.request_meta,
        )

        try:
            result = await self.runner_factory().scan(scan_request)
        except ShieldScanError as e:
            record(SCAN_FAILED, url, error=str(e))
            logger.error(f"Scan failed for {url}: {e}")
            return ScanOutcome(success=False, status_code=e.status_code, error=str(e),
                               is_admin=is_admin, events=events)
        except Exception as e:
            record(SCAN_FAILED, url, error=str(e))
            logger.exception(f"Unexpected error scanning {url}")
            return ScanOutcome(success=False, status_code=500, error=f"Scan failed: {e}",
                               is_admin=is_admin, events=events)

        record(SCAN_COMPLETED, url, plan=plan.value, score=result.score, grade=result.grade,
               duration=round(result.scan_duration_ms))

        return ScanOutcome(
            success=True,
            status_code=200,
            result=result,
            scans_remaining=decision.scans_remaining,
            reset_date=decision.reset_date,
            is_admin=is_admin,
            events=events,
        )

    async def _resolve_plan(self, request: ScanRequest) -> PlanTier:
        if self.plan_lookup is None or not request.user_id:
            return request.plan
        try:
            plan = await self.plan_lookup.plan_for(request.user_id)
        except Exception as e:
            logger.warning(f"Plan lookup failed for {request.user_id}, keeping {request.plan.value}: {e}")
            return request.plan
        return PlanTier.parse(plan) if plan is not None else request.plan
