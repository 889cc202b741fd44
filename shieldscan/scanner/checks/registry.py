"""Check registry - every check the scanner can emit, with its static policy.

Defines per check id:
  - display name and category
  - the minimum plan tier that unlocks it
  - its default finding type
  - its score weight (falls back to DEFAULT_WEIGHT)

Keeping this in one table means plan gates and weights are reviewed and
tested in one place instead of being scattered through the evaluator.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from shieldscan.util.types import CheckStatus, FindingType, PlanTier

_TIER_RANK = {
    PlanTier.FREE: 0,
    PlanTier.PRO: 1,
    PlanTier.BUSINESS: 2,
    PlanTier.ENTERPRISE: 3,
}


@dataclass(frozen=True)
class Weight:
    """Signed score contribution by status."""
    passed: int
    warning: int
    failed: int

    def for_status(self, status: CheckStatus) -> int:
        if status is CheckStatus.PASSED:
            return self.passed
        if status is CheckStatus.WARNING:
            return self.warning
        if status is CheckStatus.FAILED:
            return self.failed
        return 0


DEFAULT_WEIGHT = Weight(passed=3, warning=-2, failed=-5)

SCORE_WEIGHTS: Dict[str, Weight] = {
    'ssl-valid': Weight(15, 5, -20),
    'ssl-expiry': Weight(10, -5, -15),
    'tls-version': Weight(10, 0, -10),
    'dns-resolution': Weight(10, 0, -25),
    'https-enforced': Weight(10, 0, -15),
    'header-hsts': Weight(8, -3, -8),
    'header-xfo': Weight(5, -2, -5),
    'header-xcto': Weight(5, -2, -5),
    'header-csp': Weight(8, -3, -8),
    'email-spf': Weight(5, -2, -3),
    'email-dmarc': Weight(5, -2, -3),
    'mixed-content': Weight(5, -5, -10),
    'basic-xss': Weight(5, -5, -15),
    'sqli-test': Weight(5, -5, -20),
    'cdn-detection': Weight(5, 0, 0),
    'waf-detection': Weight(5, 0, 0),
}


def weight_for(check_id: str) -> Weight:
    return SCORE_WEIGHTS.get(check_id, DEFAULT_WEIGHT)


@dataclass(frozen=True)
class CheckDefinition:
    """Static metadata for one check id."""
    check_id: str
    name: str
    category: str
    plan_gate: PlanTier
    finding_type: FindingType


_V = FindingType.VULNERABILITY
_BP = FindingType.BEST_PRACTICE
_C = FindingType.COMPLIANCE
_I = FindingType.INFORMATIONAL
_P = FindingType.PERFORMANCE

CHECK_REGISTRY: List[CheckDefinition] = [
    # DNS & infrastructure
    CheckDefinition('dns-resolution', 'DNS Resolution', 'Informational', PlanTier.FREE, _I),
    CheckDefinition('authenticated-scan', 'Authenticated Scan', 'Configuration', PlanTier.FREE, _BP),
    CheckDefinition('cdn-detection', 'CDN Detected', 'Informational', PlanTier.FREE, _I),
    CheckDefinition('ipv6-support', 'IPv6 Support', 'Informational', PlanTier.FREE, _I),
    CheckDefinition('dnssec', 'DNSSEC Validation', 'Compliance', PlanTier.BUSINESS, _C),
    CheckDefinition('caa-records', 'CAA Records', 'Compliance', PlanTier.BUSINESS, _C),

    # SSL/TLS
    CheckDefinition('ssl-valid', 'SSL Certificate Valid', 'SSL/TLS', PlanTier.FREE, _V),
    CheckDefinition('ssl-expiry', 'Certificate Expiry', 'SSL/TLS', PlanTier.FREE, _V),
    CheckDefinition('tls-version', 'TLS Protocol Version', 'SSL/TLS', PlanTier.FREE, _V),
    CheckDefinition('ssl-self-signed', 'Self-Signed Certificate', 'SSL/TLS', PlanTier.FREE, _V),
    CheckDefinition('https-missing', 'HTTPS Not Enabled', 'SSL/TLS', PlanTier.FREE, _V),
    CheckDefinition('https-enforced', 'HTTPS Enforcement', 'SSL/TLS', PlanTier.FREE, _V),
    CheckDefinition('mixed-content', 'Mixed Content', 'SSL/TLS', PlanTier.FREE, _V),

    # Headers
    CheckDefinition('header-hsts', 'HSTS Header', 'Headers', PlanTier.FREE, _V),
    CheckDefinition('header-xfo', 'X-Frame-Options', 'Headers', PlanTier.FREE, _V),
    CheckDefinition('header-xcto', 'X-Content-Type-Options', 'Headers', PlanTier.FREE, _BP),
    CheckDefinition('header-csp', 'Content-Security-Policy', 'Best Practice', PlanTier.PRO, _BP),
    CheckDefinition('header-rp', 'Referrer-Policy', 'Best Practice', PlanTier.PRO, _BP),
    CheckDefinition('header-pp', 'Permissions-Policy', 'Best Practice', PlanTier.PRO, _BP),
    CheckDefinition('cache-control', 'Cache-Control', 'Informational', PlanTier.PRO, _BP),
    CheckDefinition('cookie-security', 'Cookie Security', 'Best Practice', PlanTier.PRO, _BP),
    CheckDefinition('cors-config', 'CORS Configuration', 'Headers', PlanTier.PRO, _V),

    # Connectivity & performance
    CheckDefinition('http-fetch', 'Page Retrieval', 'Connectivity', PlanTier.FREE, _I),
    CheckDefinition('response-time', 'Response Time', 'Performance', PlanTier.FREE, _P),
    CheckDefinition('compression', 'Response Compression', 'Performance', PlanTier.PRO, _P),

    # Active probes
    CheckDefinition('basic-xss', 'XSS Check', 'Security', PlanTier.FREE, _V),
    CheckDefinition('sqli-test', 'SQL Injection', 'Vulnerabilities', PlanTier.PRO, _V),
    CheckDefinition('dir-listing', 'Directory Listing', 'Vulnerabilities', PlanTier.PRO, _V),
    CheckDefinition('sensitive-files', 'Sensitive File Exposure', 'Vulnerabilities', PlanTier.PRO, _V),
    CheckDefinition('public-files', 'Public Files', 'Informational', PlanTier.PRO, _I),
    CheckDefinition('robots-txt', 'Robots.txt', 'Informational', PlanTier.PRO, _I),

    # Fingerprinting
    CheckDefinition('cms-detection', 'CMS Detection', 'Technology', PlanTier.PRO, _I),
    CheckDefinition('framework-detection', 'Framework Detection', 'Technology', PlanTier.PRO, _I),
    CheckDefinition('waf-detection', 'Web Application Firewall', 'Protection', PlanTier.PRO, _I),

    # Email
    CheckDefinition('email-spf', 'SPF Record', 'Email Security', PlanTier.FREE, _V),
    CheckDefinition('email-dmarc', 'DMARC Record', 'Email Security', PlanTier.FREE, _V),
    CheckDefinition('email-dkim', 'DKIM Configuration', 'Email Security', PlanTier.PRO, _BP),
    CheckDefinition('email-bimi', 'BIMI Record', 'Email Security', PlanTier.PRO, _BP),

    # JavaScript & third parties
    CheckDefinition('js-vulnerable-libs', 'Vulnerable JavaScript Libraries', 'JavaScript Security', PlanTier.BUSINESS, _V),
    CheckDefinition('js-inline-scripts', 'Inline Scripts Detection', 'JavaScript Security', PlanTier.BUSINESS, _V),
    CheckDefinition('js-eval-usage', 'eval() Usage Detection', 'JavaScript Security', PlanTier.BUSINESS, _V),
    CheckDefinition('third-party-scripts', 'Third-Party Scripts Analysis', 'Third-Party Risk', PlanTier.BUSINESS, _V),
]

_BY_ID: Dict[str, CheckDefinition] = {c.check_id: c for c in CHECK_REGISTRY}


def get_check_by_id(check_id: str) -> Optional[CheckDefinition]:
    """Get check definition by ID."""
    return _BY_ID.get(check_id)


def tier_rank(tier: PlanTier) -> int:
    return _TIER_RANK[tier]


@dataclass(frozen=True)
class PlanAccess:
    """What a scan is entitled to run.

    Admin status comes from an injected authorization claim; admins get
    business-tier checks.
    """
    plan: PlanTier
    is_admin: bool = False

    @classmethod
    def from_plan(cls, plan, is_admin: bool = False) -> 'PlanAccess':
        plan = PlanTier.parse(plan)
        if is_admin and tier_rank(plan) < tier_rank(PlanTier.BUSINESS):
            plan = PlanTier.BUSINESS
        return cls(plan=plan, is_admin=is_admin)

    @property
    def is_pro(self) -> bool:
        return self.is_admin or tier_rank(self.plan) >= tier_rank(PlanTier.PRO)

    @property
    def is_business(self) -> bool:
        return self.is_admin or tier_rank(self.plan) >= tier_rank(PlanTier.BUSINESS)

    def allows(self, gate: PlanTier) -> bool:
        """True if a check gated at `gate` may run under this access level."""
        if gate is PlanTier.FREE:
            return True
        if gate is PlanTier.PRO:
            return self.is_pro
        return self.is_business
