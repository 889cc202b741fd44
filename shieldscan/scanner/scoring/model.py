"""Scoring model - weighted score, letter grade and summary counts.

Clear rules:
- Baseline is 50
- Only passed/warning/failed move the score; info and error never do
- Bonuses reward strong TLS, CDN, CSP and HSTS
- Score is computed over every emitted check, summary over deduplicated ones
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional

from shieldscan.util.types import (
    Check, CheckStatus, DNSResult, HeadersResult, ScanSummary, SSLResult,
)
from shieldscan.scanner.checks.registry import weight_for

logger = logging.getLogger(__name__)

BASELINE = 50

GRADE_THRESHOLDS = [
    (90, 'A+'),
    (80, 'A'),
    (70, 'B'),
    (60, 'C'),
    (45, 'D'),
]

UNSCORED = (CheckStatus.INFO, CheckStatus.ERROR)


@dataclass(frozen=True)
class Bonuses:
    """Flat score bonuses for strong configuration."""
    long_lived_ssl: int = 5
    tls13: int = 5
    cdn: int = 3
    csp: int = 5
    hsts: int = 3


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def grade_for(score: int) -> str:
    """Map a 0-100 score to a letter grade."""
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return 'F'


def dedupe_checks(checks: Iterable[Check]) -> List[Check]:
    """Keep the first check for each id, preserving order."""
    seen = set()
    unique = []
    for check in checks:
        if check.id in seen:
            continue
        seen.add(check.id)
        unique.append(check)
    return unique


def summarize(checks: List[Check]) -> ScanSummary:
    """Count statuses. Info checks count as passed."""
    passed = sum(1 for c in checks if c.status in (CheckStatus.PASSED, CheckStatus.INFO))
    warnings = sum(1 for c in checks if c.status is CheckStatus.WARNING)
    failed = sum(1 for c in checks if c.status is CheckStatus.FAILED)
    return ScanSummary(passed=passed, warnings=warnings, failed=failed, total=len(checks))


class ScoringModel:
    """Computes the security score for one scan."""

    def __init__(self, bonuses: Optional[Bonuses] = None):
        self.bonuses = bonuses or Bonuses()

    def raw_score(self, checks: Iterable[Check]) -> int:
        """Baseline plus the signed weight of every scored check."""
        score = BASELINE
        for check in checks:
            if check.status in UNSCORED:
                continue
            score += weight_for(check.id).for_status(check.status)
        return score

    def bonus(
        self,
        ssl: Optional[SSLResult] = None,
        dns: Optional[DNSResult] = None,
        headers: Optional[HeadersResult] = None,
    ) -> int:
        total = 0
        if ssl is not None:
            if ssl.valid and ssl.days_until_expiry > 30:
                total += self.bonuses.long_lived_ssl
            if ssl.protocol and 'TLSv1.3' in ssl.protocol:
                total += self.bonuses.tls13
        if dns is not None and dns.has_cdn:
            total += self.bonuses.cdn
        if headers is not None:
            if headers.security.content_security_policy.present:
                total += self.bonuses.csp
            if headers.security.strict_transport_security.present:
                total += self.bonuses.hsts
        return total

    def score(
        self,
        checks: List[Check],
        ssl: Optional[SSLResult] = None,
        dns: Optional[DNSResult] = None,
        headers: Optional[HeadersResult] = None,
    ) -> int:
        """Final score, clamped to 0-100 and rounded half up.

        `checks` should be the full emitted list, duplicates included.
        """
        raw = self.raw_score(checks) + self.bonus(ssl, dns, headers)
        final = round_half_up(min(100, max(0, raw)))
        logger.debug(f"Score: raw={raw} final={final} over {len(checks)} checks")
        return final
