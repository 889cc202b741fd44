"""Core data types and enums used across the scanner.

These types make scan results explicit and consistent.
No magic strings floating around - every status, severity and finding type
has a defined meaning. Probe snapshots are frozen once built so later
pipeline stages can read them but never rewrite them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional


class PlanTier(Enum):
    """Subscription level that gates which checks run."""
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"

    @classmethod
    def parse(cls, value: Any) -> 'PlanTier':
        """Lenient conversion - unknown or empty plans fall back to FREE."""
        if isinstance(value, PlanTier):
            return value
        try:
            return cls(str(value or '').strip().lower())
        except ValueError:
            return cls.FREE


class CheckStatus(Enum):
    """Explicit status for every check.

    Passed: control is in place
    Warning: control is missing or weak, not directly exploitable
    Failed: control is broken or a vulnerability was observed
    Info: context only - never moves the score
    Error: we tried but something broke - never moves the score
    """
    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"
    INFO = "info"
    ERROR = "error"


class Severity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class FindingType(Enum):
    """Nature of a finding, independent of its pass/fail status."""
    VULNERABILITY = "vulnerability"
    BEST_PRACTICE = "best_practice"
    COMPLIANCE = "compliance"
    INFORMATIONAL = "informational"
    PERFORMANCE = "performance"


class ReflectionContext(Enum):
    """Where a reflected marker landed in the response."""
    REDIRECT = "redirect"
    SCRIPT = "script"
    ATTRIBUTE = "attribute"
    BODY = "body"
    SAFE = "safe"


@dataclass(frozen=True)
class RequestEvidence:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'method': self.method, 'url': self.url, 'headers': dict(self.headers)}


@dataclass(frozen=True)
class ResponseEvidence:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body_preview: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'headers': dict(self.headers),
            'body_preview': self.body_preview,
        }


@dataclass(frozen=True)
class Evidence:
    """Captured request/response artifact backing a vulnerability claim.

    Body previews are always produced by the sanitizer in
    scanner.evidence - never copy a raw body in here.
    """
    request: RequestEvidence
    response: ResponseEvidence
    proof_of_impact: str
    timestamp: str
    reproduction_steps: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'request': self.request.to_dict(),
            'response': self.response.to_dict(),
            'proof_of_impact': self.proof_of_impact,
            'timestamp': self.timestamp,
        }
        if self.reproduction_steps:
            data['reproduction_steps'] = list(self.reproduction_steps)
        return data


@dataclass(frozen=True)
class Check:
    """A single named finding. This is our atomic unit of output.

    Identity key is `id` - when the same id is emitted twice the first
    occurrence wins.
    """
    id: str
    name: str
    category: str
    status: CheckStatus
    message: str
    severity: Severity = Severity.INFO
    finding_type: FindingType = FindingType.INFORMATIONAL
    plan_gate: PlanTier = PlanTier.FREE
    details: Optional[str] = None
    evidence: Optional[Evidence] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON output."""
        data = {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'status': self.status.value,
            'message': self.message,
            'severity': self.severity.value,
            'finding_type': self.finding_type.value,
            'plan_gate': self.plan_gate.value,
        }
        if self.details:
            data['details'] = self.details
        if self.evidence:
            data['evidence'] = self.evidence.to_dict()
        return data


@dataclass(frozen=True)
class MXRecord:
    exchange: str
    priority: int

    def to_dict(self) -> Dict[str, Any]:
        return {'exchange': self.exchange, 'priority': self.priority}


@dataclass(frozen=True)
class DNSResult:
    """Snapshot of everything DNS told us about the host."""
    hostname: str
    resolved: bool
    ip_addresses: List[str] = field(default_factory=list)
    ipv6_addresses: List[str] = field(default_factory=list)
    mx_records: List[MXRecord] = field(default_factory=list)
    ns_records: List[str] = field(default_factory=list)
    txt_records: List[str] = field(default_factory=list)
    caa_records: List[str] = field(default_factory=list)
    has_cdn: bool = False
    cdn_provider: Optional[str] = None
    has_dnssec: bool = False
    errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hostname': self.hostname,
            'resolved': self.resolved,
            'ip_addresses': list(self.ip_addresses),
            'ipv6_addresses': list(self.ipv6_addresses),
            'mx_records': [mx.to_dict() for mx in self.mx_records],
            'ns_records': list(self.ns_records),
            'txt_records': list(self.txt_records),
            'caa_records': list(self.caa_records),
            'has_cdn': self.has_cdn,
            'cdn_provider': self.cdn_provider,
            'has_dnssec': self.has_dnssec,
            'errors': dict(self.errors),
        }


@dataclass(frozen=True)
class SSLResult:
    """Certificate and handshake facts for port 443."""
    valid: bool
    issuer: str = ""
    subject: str = ""
    valid_from: str = ""
    valid_to: str = ""
    days_until_expiry: int = 0
    protocol: str = ""
    cipher: str = ""
    self_signed: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'issuer': self.issuer,
            'subject': self.subject,
            'valid_from': self.valid_from,
            'valid_to': self.valid_to,
            'days_until_expiry': self.days_until_expiry,
            'protocol': self.protocol,
            'cipher': self.cipher,
            'self_signed': self.self_signed,
            'errors': list(self.errors),
        }


@dataclass(frozen=True)
class HeaderCheck:
    present: bool
    value: Optional[str] = None
    status: CheckStatus = CheckStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {'present': self.present, 'value': self.value, 'status': self.status.value}


@dataclass(frozen=True)
class SecurityHeaders:
    content_security_policy: HeaderCheck
    x_frame_options: HeaderCheck
    x_content_type_options: HeaderCheck
    referrer_policy: HeaderCheck
    strict_transport_security: HeaderCheck
    x_xss_protection: HeaderCheck
    permissions_policy: HeaderCheck

    def to_dict(self) -> Dict[str, Any]:
        return {
            'content_security_policy': self.content_security_policy.to_dict(),
            'x_frame_options': self.x_frame_options.to_dict(),
            'x_content_type_options': self.x_content_type_options.to_dict(),
            'referrer_policy': self.referrer_policy.to_dict(),
            'strict_transport_security': self.strict_transport_security.to_dict(),
            'x_xss_protection': self.x_xss_protection.to_dict(),
            'permissions_policy': self.permissions_policy.to_dict(),
        }


@dataclass(frozen=True)
class HeadersResult:
    """Lowercase-keyed raw headers plus the security header table."""
    raw: Dict[str, str]
    security: SecurityHeaders

    def to_dict(self) -> Dict[str, Any]:
        return {'raw': dict(self.raw), 'security': self.security.to_dict()}


@dataclass(frozen=True)
class ServerInfo:
    server: Optional[str] = None
    powered_by: Optional[str] = None
    technology: List[str] = field(default_factory=list)
    server_exposed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'server': self.server,
            'powered_by': self.powered_by,
            'technology': list(self.technology),
            'server_exposed': self.server_exposed,
        }


@dataclass(frozen=True)
class RobotsInfo:
    exists: bool
    disallowed_paths: List[str] = field(default_factory=list)
    sitemaps: List[str] = field(default_factory=list)
    exposed_sensitive_paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'exists': self.exists,
            'disallowed_paths': list(self.disallowed_paths),
            'sitemaps': list(self.sitemaps),
            'exposed_sensitive_paths': list(self.exposed_sensitive_paths),
        }


@dataclass(frozen=True)
class EmailSecurityResult:
    spf: bool = False
    spf_record: Optional[str] = None
    dmarc: bool = False
    dmarc_record: Optional[str] = None
    dkim: bool = False
    dkim_selector: Optional[str] = None
    bimi: bool = False
    mx_records: List[MXRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'spf': self.spf,
            'spf_record': self.spf_record,
            'dmarc': self.dmarc,
            'dmarc_record': self.dmarc_record,
            'dkim': self.dkim,
            'dkim_selector': self.dkim_selector,
            'bimi': self.bimi,
            'mx_records': [mx.to_dict() for mx in self.mx_records],
        }


@dataclass(frozen=True)
class TechnologyInfo:
    name: str
    category: str
    version: Optional[str] = None
    confidence: int = 70

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'category': self.category,
            'version': self.version,
            'confidence': self.confidence,
        }


@dataclass(frozen=True)
class VulnerabilityResult:
    type: str
    found: bool
    details: str
    severity: Severity
    evidence: Optional[Evidence] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': self.type,
            'found': self.found,
            'details': self.details,
            'severity': self.severity.value,
        }
        if self.evidence:
            data['evidence'] = self.evidence.to_dict()
        return data


@dataclass(frozen=True)
class AuthConfig:
    """Credentials the caller wants sent with every fetch."""
    headers: Dict[str, str] = field(default_factory=dict)
    cookie_header: Optional[str] = None
    profile_name: Optional[str] = None
    profile_type: Optional[str] = None


@dataclass
class ScanRequest:
    """Input to a single scan."""
    url: str
    plan: PlanTier = PlanTier.FREE
    is_admin_override: bool = False
    auth: Optional[AuthConfig] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    request_meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.plan = PlanTier.parse(self.plan)


@dataclass(frozen=True)
class ScanSummary:
    passed: int
    warnings: int
    failed: int
    total: int

    def to_dict(self) -> Dict[str, int]:
        return {
            'passed': self.passed,
            'warnings': self.warnings,
            'failed': self.failed,
            'total': self.total,
        }


@dataclass(frozen=True)
class ScanResult:
    """Aggregate root for one scan. Built once, then owned by the caller."""
    url: str
    timestamp: str
    score: int
    grade: str
    checks: List[Check]
    summary: ScanSummary
    dns: Optional[DNSResult] = None
    ssl: Optional[SSLResult] = None
    headers: Optional[HeadersResult] = None
    server: Optional[ServerInfo] = None
    vulnerabilities: List[VulnerabilityResult] = field(default_factory=list)
    technologies: List[TechnologyInfo] = field(default_factory=list)
    robots: Optional[RobotsInfo] = None
    email_security: Optional[EmailSecurityResult] = None
    scan_duration_ms: float = 0.0

    def get_check(self, check_id: str) -> Optional[Check]:
        """Return the check with this id, if emitted."""
        for check in self.checks:
            if check.id == check_id:
                return check
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON output."""
        return {
            'url': self.url,
            'timestamp': self.timestamp,
            'score': self.score,
            'grade': self.grade,
            'checks': [c.to_dict() for c in self.checks],
            'summary': self.summary.to_dict(),
            'dns': self.dns.to_dict() if self.dns else None,
            'ssl': self.ssl.to_dict() if self.ssl else None,
            'headers': self.headers.to_dict() if self.headers else None,
            'server': self.server.to_dict() if self.server else None,
            'vulnerabilities': [v.to_dict() for v in self.vulnerabilities],
            'technologies': [t.to_dict() for t in self.technologies],
            'robots': self.robots.to_dict() if self.robots else None,
            'email_security': self.email_security.to_dict() if self.email_security else None,
            'scan_duration_ms': round(self.scan_duration_ms, 2),
        }
