"""Check evaluator - turns probe snapshots into the ordered list of checks.

Takes everything the probes gathered for one target and evaluates it
section by section: DNS, TLS, headers and page content, active probes,
fingerprinting, email, JavaScript. Each check picks up its name, category,
plan gate and finding type from the registry. Evidence is decided once,
when the check is created, from its finding type and status.

The evaluator does no I/O. Duplicate ids are allowed here (a paid tier can
re-state a free-tier finding); the scoring model dedupes.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from shieldscan.util.types import (
    AuthConfig, Check, CheckStatus, DNSResult, EmailSecurityResult, Evidence,
    FindingType, PlanTier, RobotsInfo, Severity, SSLResult, TechnologyInfo,
    VulnerabilityResult, ReflectionContext,
)
from shieldscan.scanner.checks.registry import PlanAccess, get_check_by_id
from shieldscan.scanner.evidence import build_evidence, evidence_applies
from shieldscan.scanner.fingerprint import (
    analyze_third_party_scripts, check_javascript_security, check_mixed_content, detect_waf,
)
from shieldscan.scanner.probes.http_probe import FetchResult
from shieldscan.scanner.probes.vuln_probe import (
    DirectoryListingResult, ReflectionResult, SQLErrorResult,
)
from shieldscan.scanner.probes.exposure_probe import SensitiveFilesResult

logger = logging.getLogger(__name__)

EXPIRY_WARNING_DAYS = 30
COOKIE_FLAGS = ('Secure', 'HttpOnly', 'SameSite')


@dataclass
class ScoringPolicy:
    """Policy switches that change how findings are judged."""
    # Missing DNSSEC/CAA becomes a scored compliance warning instead of context
    strict_dns_compliance: bool = False


@dataclass
class ScanData:
    """Everything the probes learned about one target."""
    url: str
    hostname: str
    is_https: bool
    dns: DNSResult
    ssl: Optional[SSLResult] = None
    fetch: Optional[FetchResult] = None
    reflection: Optional[ReflectionResult] = None
    sqli: Optional[SQLErrorResult] = None
    listing: Optional[DirectoryListingResult] = None
    sensitive: Optional[SensitiveFilesResult] = None
    robots: Optional[RobotsInfo] = None
    email: Optional[EmailSecurityResult] = None
    technologies: List[TechnologyInfo] = field(default_factory=list)
    auth: Optional[AuthConfig] = None

    @property
    def raw_headers(self) -> dict:
        return self.fetch.headers.raw if self.fetch else {}

    @property
    def content(self) -> str:
        return self.fetch.content if self.fetch else ''

    @property
    def reachable(self) -> bool:
        return bool(self.fetch and self.fetch.success)


@dataclass
class Evaluation:
    checks: List[Check] = field(default_factory=list)
    vulnerabilities: List[VulnerabilityResult] = field(default_factory=list)


def _ttfb_message(ms: int, cdn_context: str) -> str:
    if ms < 500:
        return f"Excellent TTFB: {ms}ms{cdn_context}"
    if ms < 1500:
        return f"Good TTFB: {ms}ms{cdn_context}"
    if ms < 3000:
        return f"Moderate TTFB: {ms}ms{cdn_context}"
    return f"High initial latency: {ms}ms{cdn_context} - may include redirects and TLS negotiation"


def resolution_message(dns: DNSResult) -> str:
    """Describe what the name resolved to, IPv4 first, IPv6 when that is all there is."""
    if dns.ip_addresses:
        addresses, family, suffix = dns.ip_addresses, 'IPv4', ''
    else:
        addresses, family, suffix = dns.ipv6_addresses, 'IPv6', ' only'

    count = len(addresses)
    sample = ', '.join(addresses[:2])
    if count > 2:
        return f"Resolves to {count} {family} addresses{suffix} (sample: {sample}, ...)"
    return f"Resolves to {count} {family} address(es){suffix}: {sample}"


def missing_cookie_flags(set_cookie: str) -> List[str]:
    """Flags not set on every cookie in a newline-joined Set-Cookie value."""
    cookies = [c for c in set_cookie.split('\n') if c.strip()]
    missing = []
    for flag in COOKIE_FLAGS:
        pattern = re.compile(rf'\b{flag}\b', re.I)
        if not all(pattern.search(cookie) for cookie in cookies):
            missing.append(flag)
    return missing


class CheckEvaluator:
    """Evaluates probe data into checks for one plan tier.

    One instance can evaluate many scans; per-scan state lives in the
    Evaluation being built.
    """

    def __init__(self, policy: Optional[ScoringPolicy] = None):
        """Initialize evaluator with scoring policy."""
        self.policy = policy or ScoringPolicy()

    def evaluate(self, data: ScanData, access: PlanAccess) -> Evaluation:
        """Build the ordered check list and vulnerability records.

        Free-tier checks come first, paid sections follow in a fixed order.
        Checks gated above `access` are never emitted.
        """
        self._data = data
        self._access = access
        self._out = Evaluation()

        self._eval_dns()
        self._eval_ssl()

        if data.dns.resolved:
            self._eval_content()
            self._eval_active_probes()
            if access.is_pro:
                self._eval_pro_headers()
                self._eval_exposure()
                self._eval_technologies()
                self._eval_robots()
            self._eval_email()
            if access.is_pro:
                self._eval_waf()
            if access.is_business:
                self._eval_javascript()
            if data.is_https:
                self._add('https-enforced', CheckStatus.PASSED, 'Site is served over HTTPS')

        result = self._out
        del self._data, self._access, self._out
        logger.debug(f"Evaluated {len(result.checks)} checks for {data.hostname}")
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _add(
        self,
        check_id: str,
        status: CheckStatus,
        message: str,
        severity: Severity = Severity.INFO,
        details: Optional[str] = None,
        finding_type: Optional[FindingType] = None,
        name: Optional[str] = None,
        category: Optional[str] = None,
        gate: Optional[PlanTier] = None,
        evidence: Optional[Evidence] = None,
    ) -> None:
        definition = get_check_by_id(check_id)
        gate = gate or definition.plan_gate
        if not self._access.allows(gate):
            return

        finding_type = finding_type or definition.finding_type
        if evidence_applies(finding_type, status):
            evidence = evidence or self._page_evidence(message or details or definition.name)
        else:
            evidence = None

        self._out.checks.append(Check(
            id=check_id,
            name=name or definition.name,
            category=category or definition.category,
            status=status,
            message=message,
            severity=severity,
            finding_type=finding_type,
            plan_gate=gate,
            details=details,
            evidence=evidence,
        ))

    def _page_evidence(self, proof: str) -> Evidence:
        raw = self._data.raw_headers
        return build_evidence(
            url=self._data.url,
            proof_of_impact=proof,
            request_headers=raw,
            response_headers=raw,
            body=self._data.content,
        )

    def _add_vulnerability(self, vuln_type: str, details: str, severity: Severity,
                           evidence: Optional[Evidence] = None) -> None:
        self._out.vulnerabilities.append(VulnerabilityResult(
            type=vuln_type,
            found=True,
            details=details,
            severity=severity,
            evidence=evidence or self._page_evidence(details),
        ))

    # ------------------------------------------------------------------
    # DNS
    # ------------------------------------------------------------------

    def _eval_dns(self) -> None:
        dns = self._data.dns
        if not dns.resolved:
            self._add(
                'dns-resolution', CheckStatus.FAILED, 'Domain could not be resolved',
                severity=Severity.CRITICAL, category='DNS',
            )
            return

        self._add('dns-resolution', CheckStatus.PASSED, resolution_message(dns))

        auth = self._data.auth
        if auth and auth.profile_name:
            self._add(
                'authenticated-scan', CheckStatus.INFO,
                f"Using {auth.profile_type or 'custom'} authentication: {auth.profile_name}",
            )

        if dns.has_cdn:
            self._add(
                'cdn-detection', CheckStatus.INFO,
                f"Traffic routed through {dns.cdn_provider or 'CDN'}",
                details='CDN presence affects header and response behavior. '
                        'Some security headers may vary by endpoint.',
            )

        if dns.ipv6_addresses:
            self._add(
                'ipv6-support', CheckStatus.INFO,
                f"{len(dns.ipv6_addresses)} IPv6 address(es) configured",
            )

        if self._access.is_business:
            self._eval_dns_compliance(dns)

    def _eval_dns_compliance(self, dns: DNSResult) -> None:
        strict = self.policy.strict_dns_compliance
        absent_status = CheckStatus.WARNING if strict else CheckStatus.INFO
        absent_severity = Severity.LOW if strict else Severity.INFO

        if dns.has_dnssec:
            self._add('dnssec', CheckStatus.PASSED, 'DNSSEC is enabled')
        else:
            self._add(
                'dnssec', absent_status,
                'DNSSEC not configured (common for CDN-backed domains)',
                severity=absent_severity,
            )

        if dns.caa_records:
            self._add(
                'caa-records', CheckStatus.PASSED,
                f"Certificate authorities restricted: {len(dns.caa_records)} CAA record(s)",
                details=', '.join(dns.caa_records),
            )
        else:
            self._add(
                'caa-records', absent_status,
                'No CAA records configured (optional security control)',
                severity=absent_severity,
            )

    # ------------------------------------------------------------------
    # SSL/TLS
    # ------------------------------------------------------------------

    def _eval_ssl(self) -> None:
        data = self._data
        if not data.is_https:
            self._add(
                'https-missing', CheckStatus.FAILED,
                'Website does not use HTTPS - all traffic is unencrypted!',
                severity=Severity.CRITICAL,
            )
            return

        ssl = data.ssl
        if ssl is None or not data.dns.resolved:
            return

        if ssl.valid:
            self._add('ssl-valid', CheckStatus.PASSED, f"Certificate issued by {ssl.issuer}")
            self._eval_expiry(ssl)
            self._eval_protocol(ssl)
        else:
            self._add(
                'ssl-valid', CheckStatus.FAILED,
                ', '.join(ssl.errors) or 'Invalid SSL certificate',
                severity=Severity.CRITICAL, name='SSL Certificate',
            )

        if ssl.self_signed:
            self._add(
                'ssl-self-signed', CheckStatus.WARNING,
                'Certificate is self-signed (not trusted by browsers)',
                severity=Severity.MEDIUM,
            )

    def _eval_expiry(self, ssl: SSLResult) -> None:
        days = ssl.days_until_expiry
        if days <= 0:
            self._add('ssl-expiry', CheckStatus.FAILED, 'Certificate has EXPIRED!',
                      severity=Severity.CRITICAL)
        elif days < EXPIRY_WARNING_DAYS:
            self._add('ssl-expiry', CheckStatus.WARNING, f"Certificate expires in {days} days",
                      severity=Severity.MEDIUM)
        else:
            self._add('ssl-expiry', CheckStatus.PASSED, f"Valid for {days} more days")

    def _eval_protocol(self, ssl: SSLResult) -> None:
        protocol = ssl.protocol
        if not protocol:
            return
        if 'TLSv1.3' in protocol:
            self._add('tls-version', CheckStatus.PASSED, f"Using {protocol} (latest)")
        elif 'TLSv1.2' in protocol:
            self._add('tls-version', CheckStatus.PASSED, f"Using {protocol}")
        else:
            self._add('tls-version', CheckStatus.FAILED, f"Weak TLS version: {protocol}",
                      severity=Severity.HIGH)

    # ------------------------------------------------------------------
    # Headers and page content (free tier)
    # ------------------------------------------------------------------

    def _eval_content(self) -> None:
        data = self._data

        if not data.reachable:
            error = data.fetch.error if data.fetch else 'not attempted'
            self._add('http-fetch', CheckStatus.ERROR, f"Could not retrieve page: {error}")
        else:
            self._eval_free_headers()

        if data.fetch is not None:
            cdn_context = ''
            if data.dns.has_cdn:
                cdn_context = f" (CDN-backed: {data.dns.cdn_provider or 'detected'})"
            self._add(
                'response-time', CheckStatus.INFO,
                _ttfb_message(int(round(data.fetch.response_time_ms)), cdn_context),
            )

        if data.is_https and data.reachable:
            self._eval_mixed_content()

    def _eval_free_headers(self) -> None:
        sec = self._data.fetch.headers.security

        if sec.strict_transport_security.present:
            self._add('header-hsts', CheckStatus.PASSED, 'HSTS enabled - forces HTTPS connections')
        elif self._data.is_https:
            self._add(
                'header-hsts', CheckStatus.WARNING,
                'HSTS not enabled - browsers can connect via HTTP',
                severity=Severity.MEDIUM, details='Add Strict-Transport-Security header',
            )

        if sec.x_frame_options.present:
            self._add('header-xfo', CheckStatus.PASSED,
                      f"Clickjacking protection: {sec.x_frame_options.value}")
        else:
            self._add('header-xfo', CheckStatus.WARNING, 'Missing - vulnerable to clickjacking',
                      severity=Severity.MEDIUM, details='Add X-Frame-Options: DENY or SAMEORIGIN')

        if sec.x_content_type_options.present:
            self._add('header-xcto', CheckStatus.PASSED, 'MIME sniffing protection enabled')
        else:
            self._add(
                'header-xcto', CheckStatus.INFO, 'X-Content-Type-Options header not set',
                category='Best Practice', details='Consider adding X-Content-Type-Options: nosniff',
            )

    def _eval_mixed_content(self, gate: Optional[PlanTier] = None, name: Optional[str] = None) -> None:
        mixed = check_mixed_content(self._data.content)
        if mixed.found:
            self._add(
                'mixed-content', CheckStatus.WARNING,
                f"Found {mixed.count} HTTP resources on HTTPS page",
                severity=Severity.MEDIUM,
                details=f"Resources: {', '.join(mixed.examples[:3])}",
                gate=gate, name=name,
            )
        else:
            self._add('mixed-content', CheckStatus.PASSED, 'No mixed content detected',
                      gate=gate, name=name)

    # ------------------------------------------------------------------
    # Active probes
    # ------------------------------------------------------------------

    def _eval_active_probes(self) -> None:
        xss = self._data.reflection
        if xss is not None:
            self._eval_reflection(xss)

        if not self._access.is_pro:
            return

        sqli = self._data.sqli
        if sqli is not None:
            if sqli.vulnerable:
                self._add(
                    'sqli-test', CheckStatus.FAILED, 'SQL error patterns detected!',
                    severity=Severity.CRITICAL, details=sqli.details, evidence=sqli.evidence,
                )
                self._add_vulnerability('SQL Injection Risk', sqli.details, Severity.CRITICAL,
                                        sqli.evidence)
            else:
                self._add('sqli-test', CheckStatus.PASSED, 'No SQL injection patterns detected')

        listing = self._data.listing
        if listing is not None:
            if listing.found:
                self._add(
                    'dir-listing', CheckStatus.WARNING, 'Directory listing may be enabled',
                    severity=Severity.MEDIUM, details=f"Paths: {', '.join(listing.paths)}",
                )
            else:
                self._add('dir-listing', CheckStatus.PASSED, 'Directory listing appears disabled')

    def _eval_reflection(self, xss: ReflectionResult) -> None:
        if xss.vulnerable:
            self._add(
                'basic-xss', CheckStatus.FAILED,
                f"Input reflected in executable context ({xss.context.value})",
                severity=Severity.HIGH, details=xss.details,
                finding_type=FindingType.VULNERABILITY,
                name='XSS Vulnerability', category='Vulnerabilities',
                evidence=xss.evidence,
            )
            self._add_vulnerability('Cross-Site Scripting (XSS)', xss.details, Severity.HIGH,
                                    xss.evidence)
        elif xss.reflected:
            if xss.context is ReflectionContext.REDIRECT:
                details = ('Input reflected in redirect response. '
                           'This is expected behavior and not exploitable.')
            else:
                details = ('Input reflected but not in an executable context. '
                           'No XSS vulnerability detected.')
            self._add(
                'basic-xss', CheckStatus.INFO, xss.details, details=details,
                finding_type=FindingType.INFORMATIONAL,
                name='Input Reflection', category='Informational',
            )
        else:
            self._add('basic-xss', CheckStatus.PASSED, 'No input reflection detected')

    # ------------------------------------------------------------------
    # Pro tier
    # ------------------------------------------------------------------

    def _eval_pro_headers(self) -> None:
        data = self._data
        if not data.reachable:
            return
        sec = data.fetch.headers.security
        raw = data.raw_headers

        if sec.content_security_policy.present:
            self._add('header-csp', CheckStatus.PASSED, 'CSP header configured (helps mitigate XSS)')
        else:
            self._add(
                'header-csp', CheckStatus.INFO, 'No CSP header detected', severity=Severity.LOW,
                details='CSP helps mitigate XSS but its absence does not indicate an exploitable '
                        'vulnerability. Consider adding after testing application compatibility.',
            )

        if sec.referrer_policy.present:
            self._add('header-rp', CheckStatus.PASSED, f"Referrer control: {sec.referrer_policy.value}")
        else:
            self._add(
                'header-rp', CheckStatus.INFO,
                'Referrer-Policy header not detected on this endpoint',
                details='This header may be present on other endpoints. '
                        'CDNs often set headers dynamically.',
            )

        if sec.permissions_policy.present:
            self._add('header-pp', CheckStatus.PASSED, 'Browser feature permissions configured')
        else:
            self._add(
                'header-pp', CheckStatus.INFO, 'Permissions-Policy header not detected',
                details='This header restricts browser features. Absence is common and not exploitable.',
            )

        cache_control = raw.get('cache-control')
        if cache_control:
            self._add('cache-control', CheckStatus.PASSED, f"Cache policy: {cache_control[:50]}")
        else:
            self._add('cache-control', CheckStatus.WARNING, 'No cache control header',
                      severity=Severity.LOW, category='Headers')

        encoding = raw.get('content-encoding', '').lower()
        compression = [label for token, label in (('br', 'Brotli'), ('gzip', 'GZIP'), ('deflate', 'Deflate'))
                       if token in encoding]
        if compression:
            self._add('compression', CheckStatus.PASSED, f"Compression enabled: {', '.join(compression)}")
        else:
            self._add(
                'compression', CheckStatus.INFO,
                'No explicit compression header detected (may use HTTP/2 or CDN compression)',
                details='Modern CDNs and HTTP/2 connections may compress responses without '
                        'explicit Content-Encoding headers.',
            )

        set_cookie = raw.get('set-cookie', '')
        if set_cookie:
            missing = missing_cookie_flags(set_cookie)
            if not missing:
                self._add('cookie-security', CheckStatus.PASSED,
                          'Cookies have Secure, HttpOnly, SameSite flags')
            else:
                self._add(
                    'cookie-security', CheckStatus.INFO,
                    f"Cookie flags could be improved: {', '.join(missing)} not set",
                    severity=Severity.LOW,
                    details='These flags are recommended for session/auth cookies. '
                            'Impact depends on cookie purpose.',
                )

        cors = raw.get('access-control-allow-origin')
        if cors:
            if cors.strip() == '*':
                self._add('cors-config', CheckStatus.WARNING, 'CORS allows all origins (*)',
                          severity=Severity.MEDIUM, details='Consider restricting to specific origins')
            else:
                self._add('cors-config', CheckStatus.PASSED, f"CORS restricted to: {cors[:40]}")

        if data.dns.has_cdn:
            self._add(
                'cdn-detection', CheckStatus.PASSED, f"Protected by {data.dns.cdn_provider}",
                name='CDN Detection', category='Infrastructure', gate=PlanTier.PRO,
            )

    def _eval_exposure(self) -> None:
        sensitive = self._data.sensitive
        if sensitive is None:
            return

        if sensitive.found:
            self._add(
                'sensitive-files', CheckStatus.WARNING,
                f"Potentially sensitive files exposed: {', '.join(sensitive.files)}",
                severity=Severity.MEDIUM,
                details='These files should not be publicly reachable.',
            )
        else:
            self._add('sensitive-files', CheckStatus.PASSED, 'No sensitive files exposed',
                      name='Sensitive Files', category='Security')

        if sensitive.public_files:
            self._add(
                'public-files', CheckStatus.INFO,
                f"Standard public files present: {', '.join(sensitive.public_files)}",
                details='These files are public by design and do not represent a security issue.',
            )

    def _eval_technologies(self) -> None:
        techs = self._data.technologies

        cms = [t for t in techs if t.category == 'CMS']
        if cms:
            self._add('cms-detection', CheckStatus.INFO,
                      f"CMS detected: {', '.join(t.name for t in cms)}",
                      details=self._versions(cms))

        frameworks = [t for t in techs if t.category == 'Framework']
        if frameworks:
            self._add('framework-detection', CheckStatus.INFO,
                      f"Frameworks: {', '.join(t.name for t in frameworks)}",
                      details=self._versions(frameworks))

    @staticmethod
    def _versions(techs: List[TechnologyInfo]) -> Optional[str]:
        versions = [f"{t.name} {t.version}" for t in techs if t.version]
        return f"Versions: {', '.join(versions)}" if versions else None

    def _eval_robots(self) -> None:
        robots = self._data.robots
        if robots is None or not robots.exists:
            return

        sensitive = robots.exposed_sensitive_paths
        if sensitive:
            more = '...' if len(sensitive) > 3 else ''
            self._add(
                'robots-txt', CheckStatus.INFO,
                f"robots.txt present with {len(sensitive)} restricted path(s)",
                details=f"robots.txt is public by design. Restricted paths: "
                        f"{', '.join(sensitive[:3])}{more}",
                name='Robots.txt Analysis',
            )
        else:
            self._add(
                'robots-txt', CheckStatus.INFO, 'robots.txt present (standard configuration)',
                details='robots.txt is public by design and does not represent a security issue.',
            )

    # ------------------------------------------------------------------
    # Email, WAF, JavaScript
    # ------------------------------------------------------------------

    def _eval_email(self) -> None:
        email = self._data.email
        if email is None:
            return

        if email.spf:
            self._add('email-spf', CheckStatus.PASSED, 'SPF record configured for email authentication',
                      details=email.spf_record)
        else:
            self._add('email-spf', CheckStatus.WARNING, 'No SPF record found - email spoofing risk',
                      severity=Severity.LOW, details='Add SPF record to prevent email spoofing')

        if email.dmarc:
            self._add('email-dmarc', CheckStatus.PASSED, 'DMARC policy configured',
                      details=email.dmarc_record)
        else:
            self._add('email-dmarc', CheckStatus.WARNING, 'No DMARC record found',
                      severity=Severity.LOW, details='Add DMARC to improve email security')

        if self._access.is_pro:
            if email.dkim:
                self._add('email-dkim', CheckStatus.PASSED,
                          'DKIM selector found - email signatures enabled',
                          details=f"Selector: {email.dkim_selector}")
            if email.bimi:
                self._add('email-bimi', CheckStatus.PASSED, 'BIMI configured - brand logo in emails')

    def _eval_waf(self) -> None:
        if not self._data.reachable:
            return
        provider = detect_waf(self._data.raw_headers)
        if provider:
            self._add('waf-detection', CheckStatus.PASSED, f"Protected by {provider}")
        else:
            self._add('waf-detection', CheckStatus.INFO, 'No WAF detected (or WAF is well-hidden)')

    def _eval_javascript(self) -> None:
        data = self._data
        if not data.reachable:
            return
        js = check_javascript_security(data.content)

        if js.vulnerable_libraries:
            libraries = ', '.join(js.vulnerable_libraries)
            self._add(
                'js-vulnerable-libs', CheckStatus.FAILED,
                f"Found {len(js.vulnerable_libraries)} potentially vulnerable libraries",
                severity=Severity.HIGH, details=libraries,
            )
            self._add_vulnerability('Vulnerable Libraries', f"Libraries: {libraries}", Severity.HIGH)

        if js.has_inline_scripts:
            self._add('js-inline-scripts', CheckStatus.WARNING, 'Inline scripts detected - CSP bypass risk',
                      severity=Severity.LOW, details='Consider moving scripts to external files')

        if js.has_eval:
            self._add('js-eval-usage', CheckStatus.WARNING, 'eval() or similar functions detected',
                      severity=Severity.MEDIUM,
                      details='eval() can be dangerous if used with untrusted input')

        if data.is_https:
            self._eval_mixed_content(gate=PlanTier.BUSINESS, name='Mixed Content Detection')

        third_party = analyze_third_party_scripts(data.content, data.hostname)
        if third_party.scripts:
            risky = third_party.high_risk_count > 0
            suffix = f" ({third_party.high_risk_count} high-risk)" if risky else ''
            self._add(
                'third-party-scripts',
                CheckStatus.WARNING if risky else CheckStatus.INFO,
                f"{len(third_party.scripts)} external scripts loaded{suffix}",
                severity=Severity.MEDIUM if risky else Severity.INFO,
                details=f"Domains: {', '.join(third_party.domains[:5])}",
            )
