"""
Unit Tests for the Scan Service boundary
"""

import asyncio

import pytest

from shieldscan.util.errors import ScanTimeoutError
from shieldscan.util.types import CheckStatus, Check, PlanTier, ScanRequest, ScanResult, ScanSummary
from shieldscan.scanner.service import PermissionDecision, ScanService


def make_result(url):
    check = Check(id='dns-resolution', name='DNS Resolution', category='Informational',
                  status=CheckStatus.PASSED, message='ok')
    return ScanResult(url=url, timestamp='2026-01-01T00:00:00+00:00', score=63, grade='C',
                      checks=[check], summary=ScanSummary(1, 0, 0, 1), scan_duration_ms=1234.0)


class StubRunner:
    def __init__(self, error=None):
        self.error = error
        self.requests = []

    async def scan(self, request):
        self.requests.append(request)
        if self.error:
            raise self.error
        return make_result(request.url)


class Permission:
    def __init__(self, decision):
        self.decision = decision

    async def check(self, user_id, user_email, request_meta):
        return self.decision


class Plans:
    def __init__(self, plan=None, error=None):
        self.plan = plan
        self.error = error

    async def plan_for(self, user_id):
        if self.error:
            raise self.error
        return self.plan


class Admins:
    def __init__(self, emails):
        self.emails = emails

    def is_admin(self, request):
        return request.user_email in self.emails


def user_request(url='example.com', plan='free'):
    return ScanRequest(url=url, plan=plan, user_id='u1', user_email='dev@example.com')


class TestScanService:
    """Test suite for ScanService.run"""

    @pytest.fixture
    def runner(self):
        return StubRunner()

    def test_successful_scan(self, runner):
        service = ScanService(runner_factory=lambda: runner)

        outcome = asyncio.run(service.run(user_request()))

        assert outcome.success is True
        assert outcome.status_code == 200
        assert outcome.result.grade == 'C'
        assert [e.name for e in outcome.events] == ['scan.initiated', 'scan.completed']
        assert outcome.events[1].metadata['score'] == 63
        assert runner.requests[0].url == 'https://example.com'

    def test_anonymous_scan_has_no_events(self, runner):
        service = ScanService(runner_factory=lambda: runner)
        outcome = asyncio.run(service.run(ScanRequest(url='example.com')))
        assert outcome.success is True
        assert outcome.events == []

    def test_blocked_target_is_400(self, runner):
        service = ScanService(runner_factory=lambda: runner)

        outcome = asyncio.run(service.run(user_request(url='http://192.168.0.1')))

        assert outcome.status_code == 400
        assert outcome.error == 'Cannot scan internal or private addresses'
        assert runner.requests == []

    def test_limit_reached(self, runner):
        decision = PermissionDecision(allowed=False, status_code=403, scans_remaining=0,
                                      reset_date='2026-02-01', error='Monthly scan limit reached')
        service = ScanService(permission_checker=Permission(decision), runner_factory=lambda: runner)

        outcome = asyncio.run(service.run(user_request()))

        assert outcome.status_code == 403
        assert outcome.scans_remaining == 0
        assert [e.name for e in outcome.events] == ['scan.limit.reached']
        assert runner.requests == []

    def test_rate_limited(self, runner):
        decision = PermissionDecision(allowed=False, status_code=429)
        service = ScanService(permission_checker=Permission(decision), runner_factory=lambda: runner)

        outcome = asyncio.run(service.run(user_request()))

        assert outcome.status_code == 429
        assert outcome.error == 'Scan not allowed'
        assert [e.name for e in outcome.events] == ['scan.rate_limited']

    def test_plan_lookup_overrides_declared_plan(self, runner):
        service = ScanService(plan_lookup=Plans(plan=PlanTier.PRO), runner_factory=lambda: runner)
        asyncio.run(service.run(user_request(plan='free')))
        assert runner.requests[0].plan is PlanTier.PRO

    def test_plan_lookup_failure_keeps_declared_plan(self, runner):
        service = ScanService(plan_lookup=Plans(error=RuntimeError('db down')), runner_factory=lambda: runner)
        outcome = asyncio.run(service.run(user_request(plan='business')))
        assert outcome.success is True
        assert runner.requests[0].plan is PlanTier.BUSINESS

    def test_admin_claim(self, runner):
        service = ScanService(admin_claim=Admins({'dev@example.com'}), runner_factory=lambda: runner)

        outcome = asyncio.run(service.run(user_request()))

        assert outcome.is_admin is True
        assert runner.requests[0].is_admin_override is True

    def test_unexpected_error_is_500(self):
        service = ScanService(runner_factory=lambda: StubRunner(error=KeyError('boom')))

        outcome = asyncio.run(service.run(user_request()))

        assert outcome.success is False
        assert outcome.status_code == 500
        assert outcome.events[-1].name == 'scan.failed'

    def test_permission_store_failure_is_500(self, runner):
        class BrokenPermission:
            async def check(self, user_id, user_email, request_meta):
                raise RuntimeError('quota store down')

        service = ScanService(permission_checker=BrokenPermission(), runner_factory=lambda: runner)

        outcome = asyncio.run(service.run(user_request()))

        assert outcome.success is False
        assert outcome.status_code == 500
        assert outcome.error == 'Scan failed: quota store down'
        assert [e.name for e in outcome.events] == ['scan.failed']
        assert runner.requests == []

    def test_timeout_is_504(self):
        service = ScanService(runner_factory=lambda: StubRunner(error=ScanTimeoutError('Scan timed out after 90s')))

        outcome = asyncio.run(service.run(user_request()))

        assert outcome.status_code == 504
        assert outcome.events[-1].metadata['error'] == 'Scan timed out after 90s'

    def test_outcome_serializes(self, runner):
        outcome = asyncio.run(ScanService(runner_factory=lambda: runner).run(user_request()))
        data = outcome.to_dict()
        assert data['data']['checks'][0]['status'] == 'passed'
        assert data['events'][0]['name'] == 'scan.initiated'
