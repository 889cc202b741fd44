"""
Unit Tests for the Check Evaluator
"""

import pytest

from shieldscan.util.types import (
    AuthConfig, CheckStatus, EmailSecurityResult, FindingType, PlanTier,
    ReflectionContext, RobotsInfo, Severity,
)
from shieldscan.scanner.checks.evaluator import (
    CheckEvaluator, ScoringPolicy, missing_cookie_flags, resolution_message,
)
from shieldscan.scanner.checks.registry import PlanAccess
from shieldscan.scanner.probes.exposure_probe import SensitiveFilesResult
from shieldscan.scanner.probes.vuln_probe import (
    DirectoryListingResult, ReflectionResult, SQLErrorResult,
)
from shieldscan.scanner.evidence import build_evidence
from shieldscan.scanner.scoring.model import BASELINE, ScoringModel, dedupe_checks

FREE = PlanAccess.from_plan(PlanTier.FREE)
PRO = PlanAccess.from_plan(PlanTier.PRO)
BUSINESS = PlanAccess.from_plan(PlanTier.BUSINESS)


def by_id(checks):
    found = {}
    for check in checks:
        found.setdefault(check.id, check)
    return found


class TestScenarios:
    """End-to-end evaluation of representative targets"""

    @pytest.fixture
    def evaluator(self):
        return CheckEvaluator()

    def test_http_only_target(self, evaluator, scan_data_factory, fetch_factory):
        """Plain HTTP target fails HTTPS and skips every TLS check"""
        data = scan_data_factory(url='http://example.com', fetch=fetch_factory(url='http://example.com'))

        checks = by_id(evaluator.evaluate(data, FREE).checks)

        assert checks['https-missing'].status is CheckStatus.FAILED
        assert checks['https-missing'].severity is Severity.CRITICAL
        for check_id in ('ssl-valid', 'ssl-expiry', 'tls-version', 'https-enforced', 'header-hsts'):
            assert check_id not in checks

    def test_certificate_expiring_soon(self, evaluator, scan_data_factory, ssl_factory):
        """Ten days to expiry is a warning that names the day count"""
        data = scan_data_factory(ssl=ssl_factory(days=10))

        expiry = by_id(evaluator.evaluate(data, FREE).checks)['ssl-expiry']

        assert expiry.status is CheckStatus.WARNING
        assert '10 days' in expiry.message

    def test_expired_certificate(self, evaluator, scan_data_factory, ssl_factory):
        data = scan_data_factory(ssl=ssl_factory(days=-3))
        expiry = by_id(evaluator.evaluate(data, FREE).checks)['ssl-expiry']
        assert expiry.status is CheckStatus.FAILED
        assert expiry.severity is Severity.CRITICAL

    def test_only_config_php_exposed(self, evaluator, scan_data_factory):
        """Sensitive-files check lists exactly the exposed path"""
        data = scan_data_factory(sensitive=SensitiveFilesResult(
            found=True, files=['/config.php'], public_files=['/robots.txt'],
        ))

        checks = by_id(evaluator.evaluate(data, PRO).checks)

        assert checks['sensitive-files'].status is CheckStatus.WARNING
        assert checks['sensitive-files'].message.endswith('/config.php')
        assert checks['public-files'].status is CheckStatus.INFO
        assert '/robots.txt' not in checks['sensitive-files'].message

    def test_csp_gated_by_plan(self, evaluator, scan_data_factory):
        """CSP is pro-only and its absence is context, not score"""
        data = scan_data_factory()

        free_checks = by_id(evaluator.evaluate(data, FREE).checks)
        pro_checks = by_id(evaluator.evaluate(data, PRO).checks)

        assert 'header-csp' not in free_checks
        csp = pro_checks['header-csp']
        assert csp.status is CheckStatus.INFO
        assert csp.finding_type is FindingType.BEST_PRACTICE
        assert csp.evidence is None
        assert ScoringModel().raw_score([csp]) == BASELINE

    def test_ipv6_only_host(self, evaluator, scan_data_factory, dns_factory):
        """AAAA-only hosts resolve"""
        data = scan_data_factory(dns=dns_factory(ipv4=(), ipv6=('2606:2800:220:1::248',)))

        checks = by_id(evaluator.evaluate(data, FREE).checks)

        assert checks['dns-resolution'].status is CheckStatus.PASSED
        assert 'IPv6' in checks['dns-resolution'].message
        assert checks['ipv6-support'].status is CheckStatus.INFO

    def test_unresolved_host(self, evaluator, scan_data_factory, dns_factory):
        data = scan_data_factory(dns=dns_factory(ipv4=()), ssl=None, fetch=None)

        checks = evaluator.evaluate(data, BUSINESS).checks

        assert [c.id for c in checks] == ['dns-resolution']
        assert checks[0].status is CheckStatus.FAILED
        assert checks[0].category == 'DNS'


class TestPlanGating:
    """Checks never appear above the caller's plan"""

    def test_free_plan_only_free_checks(self, scan_data_factory):
        checks = CheckEvaluator().evaluate(scan_data_factory(), FREE).checks
        assert checks
        assert all(c.plan_gate is PlanTier.FREE for c in checks)

    def test_pro_has_no_business_checks(self, scan_data_factory):
        checks = CheckEvaluator().evaluate(scan_data_factory(), PRO).checks
        assert all(c.plan_gate is not PlanTier.BUSINESS for c in checks)
        assert 'waf-detection' in by_id(checks)

    def test_admin_gets_business_checks(self, scan_data_factory, dns_factory):
        admin = PlanAccess.from_plan('free', is_admin=True)
        data = scan_data_factory(dns=dns_factory(caa_records=['issue=letsencrypt.org']))

        checks = by_id(CheckEvaluator().evaluate(data, admin).checks)

        assert checks['caa-records'].status is CheckStatus.PASSED
        assert checks['dnssec'].status is CheckStatus.INFO


class TestDNSCompliancePolicy:

    def test_absence_is_informational_by_default(self, scan_data_factory):
        checks = by_id(CheckEvaluator().evaluate(scan_data_factory(), BUSINESS).checks)
        assert checks['dnssec'].status is CheckStatus.INFO
        assert checks['caa-records'].status is CheckStatus.INFO

    def test_strict_policy_warns(self, scan_data_factory):
        evaluator = CheckEvaluator(ScoringPolicy(strict_dns_compliance=True))
        checks = by_id(evaluator.evaluate(scan_data_factory(), BUSINESS).checks)
        assert checks['dnssec'].status is CheckStatus.WARNING
        assert checks['caa-records'].severity is Severity.LOW
        assert checks['dnssec'].finding_type is FindingType.COMPLIANCE


class TestEvidence:
    """Evidence only rides on failing vulnerability checks"""

    def test_missing_xfo_carries_page_evidence(self, scan_data_factory, fetch_factory):
        data = scan_data_factory(fetch=fetch_factory(headers={}, content='<p>hello</p>'))

        xfo = by_id(CheckEvaluator().evaluate(data, FREE).checks)['header-xfo']

        assert xfo.status is CheckStatus.WARNING
        assert xfo.evidence is not None
        assert xfo.evidence.response.body_preview == '<p>hello</p>'

    def test_informational_checks_have_no_evidence(self, scan_data_factory, fetch_factory):
        data = scan_data_factory(fetch=fetch_factory(headers={}))
        checks = CheckEvaluator().evaluate(data, BUSINESS).checks

        for check in checks:
            if check.finding_type is not FindingType.VULNERABILITY or check.status is CheckStatus.PASSED:
                assert check.evidence is None, check.id

    def test_xss_in_script_context(self, scan_data_factory):
        evidence = build_evidence('https://example.com/?q=x', 'reflected', body='<script>x</script>')
        data = scan_data_factory(reflection=ReflectionResult(
            True, True, 'Input reflected inside <script> tag', ReflectionContext.SCRIPT, evidence,
        ))

        evaluation = CheckEvaluator().evaluate(data, FREE)
        xss = by_id(evaluation.checks)['basic-xss']

        assert xss.status is CheckStatus.FAILED
        assert xss.name == 'XSS Vulnerability'
        assert xss.evidence is evidence
        assert evaluation.vulnerabilities[0].type == 'Cross-Site Scripting (XSS)'
        assert evaluation.vulnerabilities[0].evidence is evidence

    def test_redirect_reflection_is_informational(self, scan_data_factory):
        data = scan_data_factory(reflection=ReflectionResult(
            False, True, 'Input reflected in 302 redirect response (non-executable, safe)',
            ReflectionContext.REDIRECT,
        ))

        xss = by_id(CheckEvaluator().evaluate(data, FREE).checks)['basic-xss']

        assert xss.status is CheckStatus.INFO
        assert xss.finding_type is FindingType.INFORMATIONAL
        assert xss.evidence is None
        assert 'redirect' in xss.details

    def test_sql_error_records_vulnerability(self, scan_data_factory):
        data = scan_data_factory(sqli=SQLErrorResult(True, 'SQL error message detected in response', 'mysql'))

        evaluation = CheckEvaluator().evaluate(data, PRO)

        assert by_id(evaluation.checks)['sqli-test'].status is CheckStatus.FAILED
        vuln = evaluation.vulnerabilities[0]
        assert vuln.type == 'SQL Injection Risk'
        assert vuln.found is True
        assert vuln.evidence is not None


class TestContentChecks:

    def test_fetch_failure_emits_single_error_check(self, scan_data_factory, fetch_factory):
        data = scan_data_factory(fetch=fetch_factory(success=False, error='Request timeout'))

        checks = by_id(CheckEvaluator().evaluate(data, PRO).checks)

        assert checks['http-fetch'].status is CheckStatus.ERROR
        assert 'Request timeout' in checks['http-fetch'].message
        for check_id in ('header-xfo', 'header-csp', 'mixed-content', 'waf-detection'):
            assert check_id not in checks

    def test_mixed_content(self, scan_data_factory, fetch_factory):
        page = '<img src="http://cdn.example.com/a.png"><script src="http://x.example.com/b.js"></script>'
        data = scan_data_factory(fetch=fetch_factory(headers={}, content=page))

        mixed = by_id(CheckEvaluator().evaluate(data, FREE).checks)['mixed-content']

        assert mixed.status is CheckStatus.WARNING
        assert mixed.message == 'Found 2 HTTP resources on HTTPS page'

    def test_response_time_mentions_cdn(self, scan_data_factory, dns_factory):
        data = scan_data_factory(dns=dns_factory(has_cdn=True, cdn_provider='Cloudflare'))
        check = by_id(CheckEvaluator().evaluate(data, FREE).checks)['response-time']
        assert check.message == 'Excellent TTFB: 120ms (CDN-backed: Cloudflare)'
        assert check.finding_type is FindingType.PERFORMANCE

    def test_cdn_duplicate_keeps_first(self, scan_data_factory, dns_factory):
        data = scan_data_factory(dns=dns_factory(has_cdn=True, cdn_provider='Fastly'))

        checks = CheckEvaluator().evaluate(data, PRO).checks
        cdn = [c for c in checks if c.id == 'cdn-detection']

        assert len(cdn) == 2
        kept = by_id(dedupe_checks(checks))['cdn-detection']
        assert kept.status is CheckStatus.INFO

    def test_cors_wildcard(self, scan_data_factory, fetch_factory):
        data = scan_data_factory(fetch=fetch_factory(headers={'Access-Control-Allow-Origin': '*'}))
        cors = by_id(CheckEvaluator().evaluate(data, PRO).checks)['cors-config']
        assert cors.status is CheckStatus.WARNING

    def test_compression_labels(self, scan_data_factory, fetch_factory):
        data = scan_data_factory(fetch=fetch_factory(headers={'Content-Encoding': 'br'}))
        check = by_id(CheckEvaluator().evaluate(data, PRO).checks)['compression']
        assert check.message == 'Compression enabled: Brotli'

    def test_directory_listing(self, scan_data_factory):
        data = scan_data_factory(listing=DirectoryListingResult(found=True, paths=['/uploads/']))
        check = by_id(CheckEvaluator().evaluate(data, PRO).checks)['dir-listing']
        assert check.status is CheckStatus.WARNING
        assert '/uploads/' in check.details

    def test_robots_with_sensitive_paths(self, scan_data_factory):
        data = scan_data_factory(robots=RobotsInfo(
            exists=True, disallowed_paths=['/admin', '/a'], exposed_sensitive_paths=['/admin'],
        ))
        check = by_id(CheckEvaluator().evaluate(data, PRO).checks)['robots-txt']
        assert check.status is CheckStatus.INFO
        assert check.name == 'Robots.txt Analysis'

    def test_authenticated_scan_notice(self, scan_data_factory):
        data = scan_data_factory(auth=AuthConfig(profile_name='staging', profile_type='bearer'))
        check = by_id(CheckEvaluator().evaluate(data, FREE).checks)['authenticated-scan']
        assert check.message == 'Using bearer authentication: staging'


class TestEmailAndJavaScript:

    def test_email_free_plan(self, scan_data_factory):
        email = EmailSecurityResult(spf=True, spf_record='v=spf1 -all', dkim=True, dkim_selector='google')
        checks = by_id(CheckEvaluator().evaluate(scan_data_factory(email=email), FREE).checks)

        assert checks['email-spf'].status is CheckStatus.PASSED
        assert checks['email-dmarc'].status is CheckStatus.WARNING
        assert 'email-dkim' not in checks

    def test_email_pro_plan_reports_dkim(self, scan_data_factory):
        email = EmailSecurityResult(dkim=True, dkim_selector='google')
        checks = by_id(CheckEvaluator().evaluate(scan_data_factory(email=email), PRO).checks)
        assert checks['email-dkim'].details == 'Selector: google'
        assert 'email-bimi' not in checks

    def test_business_javascript_checks(self, scan_data_factory, fetch_factory):
        page = (
            '<script src="https://cdn.jsdelivr.net/npm/jquery-3.4.1.min.js"></script>'
            '<script>eval("1")</script>'
        )
        data = scan_data_factory(fetch=fetch_factory(headers={}, content=page))

        evaluation = CheckEvaluator().evaluate(data, BUSINESS)
        checks = by_id(evaluation.checks)

        assert checks['js-vulnerable-libs'].status is CheckStatus.FAILED
        assert checks['js-inline-scripts'].status is CheckStatus.WARNING
        assert checks['js-eval-usage'].status is CheckStatus.WARNING
        assert checks['third-party-scripts'].status is CheckStatus.WARNING
        assert '(1 high-risk)' in checks['third-party-scripts'].message
        assert any(v.type == 'Vulnerable Libraries' for v in evaluation.vulnerabilities)


class TestHelpers:

    def test_missing_cookie_flags_checks_every_cookie(self):
        header = 'a=1; Secure; HttpOnly; SameSite=Lax\nb=2; Secure'
        assert missing_cookie_flags(header) == ['HttpOnly', 'SameSite']

    def test_all_cookie_flags_present(self):
        assert missing_cookie_flags('sid=1; Secure; HttpOnly; SameSite=Strict') == []

    def test_resolution_message_samples(self, dns_factory):
        dns = dns_factory(ipv4=('1.1.1.1', '1.0.0.1', '1.1.1.2'))
        assert resolution_message(dns) == 'Resolves to 3 IPv4 addresses (sample: 1.1.1.1, 1.0.0.1, ...)'
