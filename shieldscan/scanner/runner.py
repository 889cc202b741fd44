"""Scan runner - orchestrates one scan of one web origin.

This is where all the pieces come together:
1. Resolve DNS
2. TLS handshake and page fetch (concurrently)
3. Plan-gated probes (reflection, SQL errors, listings, files, robots, email)
4. Evaluate checks
5. Score and grade
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlparse

import aiohttp

from shieldscan.util.config import Config
from shieldscan.util.concurrency import ConcurrencyController
from shieldscan.util.errors import ScanTimeoutError
from shieldscan.util.log import get_logger
from shieldscan.util.time import now_utc, iso_now, duration_ms
from shieldscan.util.types import ScanRequest, ScanResult

from shieldscan.scanner.validation import check_resolved_addresses, validate_target
from shieldscan.scanner.fingerprint import detect_technologies
from shieldscan.scanner.probes.dns_probe import DNSProbe
from shieldscan.scanner.probes.tls_probe import TLSProbe
from shieldscan.scanner.probes.http_probe import HTTPFetcher, RetryPlan
from shieldscan.scanner.probes.vuln_probe import (
    DirectoryListingProbe, ReflectionProbe, SQLErrorProbe,
)
from shieldscan.scanner.probes.exposure_probe import RobotsProbe, SensitiveFileProbe
from shieldscan.scanner.probes.email_probe import EmailProbe
from shieldscan.scanner.checks.registry import PlanAccess
from shieldscan.scanner.checks.evaluator import CheckEvaluator, ScanData, ScoringPolicy
from shieldscan.scanner.scoring.model import ScoringModel, dedupe_checks, grade_for, summarize

logger = get_logger(__name__)


@dataclass
class ProbeSet:
    """Probe instances bound to one scan's HTTP session."""
    dns: DNSProbe
    tls: TLSProbe
    http: HTTPFetcher
    reflection: ReflectionProbe
    sqli: SQLErrorProbe
    listing: DirectoryListingProbe
    sensitive: SensitiveFileProbe
    robots: RobotsProbe
    email: EmailProbe


def build_probes(session: aiohttp.ClientSession, config: Config) -> ProbeSet:
    """Default probe wiring for a scan."""
    controller = ConcurrencyController(
        max_workers=config.max_workers,
        rate_limit_delay=config.rate_limit_delay,
    )
    dns_probe = DNSProbe(timeout=config.dns_timeout)
    return ProbeSet(
        dns=dns_probe,
        tls=TLSProbe(timeout=config.tls_timeout),
        http=HTTPFetcher(session, retry_plan=RetryPlan(base_timeout=config.http_timeout)),
        reflection=ReflectionProbe(session, timeout=config.probe_timeout),
        sqli=SQLErrorProbe(session, timeout=config.probe_timeout),
        listing=DirectoryListingProbe(session, timeout=min(10.0, config.probe_timeout)),
        sensitive=SensitiveFileProbe(session, controller, timeout=min(5.0, config.probe_timeout)),
        robots=RobotsProbe(session, timeout=min(10.0, config.probe_timeout)),
        email=EmailProbe(dns_probe),
    )


async def _skipped():
    return None


class ScanRunner:
    """Runs the complete scan pipeline for a single target.

    Stateless between scans - every call gets its own session and probes.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        probe_factory: Callable[[aiohttp.ClientSession, Config], ProbeSet] = build_probes,
    ):
        """Initialize runner with configuration and probe wiring."""
        self.config = config or Config()
        self.probe_factory = probe_factory
        self.evaluator = CheckEvaluator(
            ScoringPolicy(strict_dns_compliance=self.config.strict_dns_compliance)
        )
        self.scoring = ScoringModel()

    async def scan(self, request: ScanRequest) -> ScanResult:
        """Validate the request and run one scan within the scan budget.

        Raises ScanInputError before any network call for bad targets, and
        ScanTimeoutError if the whole scan overruns SCAN_TIMEOUT.
        """
        url = validate_target(request.url)
        access = PlanAccess.from_plan(request.plan, request.is_admin_override)

        try:
            return await asyncio.wait_for(
                self._run(url, request, access),
                timeout=self.config.scan_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Scan of {url} exceeded {self.config.scan_timeout}s")
            raise ScanTimeoutError(f"Scan timed out after {self.config.scan_timeout:.0f}s") from e

    async def _run(self, url: str, request: ScanRequest, access: PlanAccess) -> ScanResult:
        start_time = now_utc()
        hostname = urlparse(url).hostname or ''
        is_https = url.startswith('https://')

        logger.info("=" * 60)
        logger.info(f"Starting security scan for {url} (plan={access.plan.value}, admin={access.is_admin})")
        logger.info("=" * 60)

        connector = aiohttp.TCPConnector(limit=max(1, self.config.max_workers) * 2)
        async with aiohttp.ClientSession(
            connector=connector,
            cookie_jar=aiohttp.DummyCookieJar(),
        ) as session:
            probes = self.probe_factory(session, self.config)

            # Phase 1: DNS
            logger.info("Phase 1: DNS Resolution")
            dns = await probes.dns.resolve(hostname)
            data = ScanData(url=url, hostname=hostname, is_https=is_https, dns=dns, auth=request.auth)

            if dns.resolved:
                check_resolved_addresses(hostname, dns.ip_addresses + dns.ipv6_addresses)

                # Phase 2: TLS + page fetch
                logger.info("Phase 2: TLS Handshake & Page Fetch")
                data.ssl, data.fetch = await asyncio.gather(
                    probes.tls.probe(hostname) if is_https else _skipped(),
                    probes.http.fetch(url, request.auth),
                )
                if not data.fetch.success:
                    logger.warning(f"Page fetch failed for {url}: {data.fetch.error}")

                # Phase 3: Plan-gated probes
                logger.info("Phase 3: Safe Vulnerability Probes")
                await self._run_probes(probes, data, access)
            else:
                logger.warning(f"{hostname} did not resolve - skipping network probes")

        # Phase 4: Evaluate
        logger.info("Phase 4: Evaluating Security Checks")
        evaluation = self.evaluator.evaluate(data, access)

        # Phase 5: Score
        logger.info("Phase 5: Computing Score")
        headers = data.fetch.headers if data.fetch else None
        score = self.scoring.score(evaluation.checks, ssl=data.ssl, dns=dns, headers=headers)
        checks = dedupe_checks(evaluation.checks)

        result = ScanResult(
            url=url,
            timestamp=iso_now(),
            score=score,
            grade=grade_for(score),
            checks=checks,
            summary=summarize(checks),
            dns=dns,
            ssl=data.ssl,
            headers=headers,
            server=data.fetch.server if data.fetch else None,
            vulnerabilities=evaluation.vulnerabilities,
            technologies=data.technologies,
            robots=data.robots,
            email_security=data.email,
            scan_duration_ms=duration_ms(start_time),
        )

        logger.info("=" * 60)
        logger.info("Scan Complete!")
        logger.info(f"Duration: {result.scan_duration_ms / 1000:.1f}s")
        logger.info(f"Checks: {result.summary.total} "
                    f"(passed={result.summary.passed} warnings={result.summary.warnings} "
                    f"failed={result.summary.failed})")
        logger.info(f"Score: {result.score} ({result.grade})")
        logger.info("=" * 60)
        return result

    async def _run_probes(self, probes: ProbeSet, data: ScanData, access: PlanAccess) -> None:
        """Fire every probe the plan allows at once and store results on `data`."""
        url = data.url
        pro = access.is_pro

        (data.reflection, data.sqli, data.listing,
         data.sensitive, data.robots, data.email) = await asyncio.gather(
            probes.reflection.probe(url),
            probes.sqli.probe(url) if pro else _skipped(),
            probes.listing.probe(url) if pro else _skipped(),
            probes.sensitive.probe(url) if pro else _skipped(),
            probes.robots.probe(url) if pro else _skipped(),
            probes.email.check(data.hostname, extended=pro),
        )

        if pro and data.reachable:
            data.technologies = detect_technologies(data.content, data.raw_headers)
            logger.info(f"Detected {len(data.technologies)} technologies")
