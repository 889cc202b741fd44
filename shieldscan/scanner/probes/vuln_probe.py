"""Safe vulnerability probes - reflection, SQL error and directory listing.

Every probe sends at most a handful of GETs with harmless payloads (a
random marker, a lone quote) and reads the response. Nothing here changes
state on the target. Network failures come back as "not vulnerable" results
with a details string, never as exceptions.
"""

import asyncio
import logging
import re
import secrets
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

import aiohttp

from shieldscan.util.types import Evidence, ReflectionContext
from shieldscan.scanner.evidence import build_evidence
from shieldscan.scanner.probes.http_probe import BROWSER_HEADERS, read_capped, lowercase_headers

logger = logging.getLogger(__name__)

REFLECTION_PARAM = 'q'
SQLI_PARAM = 'id'
SQLI_PAYLOAD = "1'"
PROBE_BODY_LIMIT = 100_000
LISTING_BODY_LIMIT = 50_000

SQL_ERROR_PATTERNS = [
    re.compile(p, re.I) for p in (
        r'sql syntax', r'mysql', r'sqlite', r'postgresql', r'oracle',
        r'ORA-\d{5}', r'syntax error', r'unclosed quotation',
    )
]

LISTING_PATHS = ['/images/', '/assets/', '/uploads/', '/static/']
LISTING_RE = re.compile(r'index of|directory listing|parent directory', re.I)


def with_query_param(url: str, key: str, value: str) -> str:
    """Return `url` with query parameter `key` set to `value`."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != key]
    query.append((key, value))
    return urlunsplit((parts.scheme, parts.netloc, parts.path or '/', urlencode(query), parts.fragment))


def with_path(url: str, path: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, path, '', ''))


def new_marker() -> str:
    """Unique alphanumeric marker - cannot alter HTML structure."""
    return 'shieldscan' + secrets.token_hex(6)


@dataclass(frozen=True)
class ReflectionResult:
    vulnerable: bool
    reflected: bool
    details: str
    context: ReflectionContext
    evidence: Optional[Evidence] = None


def classify_reflection(body: str, marker: str):
    """Decide where `marker` landed in an HTML body.

    Returns (context, description). Script, inline handler and javascript:
    URL placements are executable; a generic attribute or plain text is not.
    """
    if marker not in body:
        return ReflectionContext.SAFE, ''

    mark = re.escape(marker)
    in_script = re.search(rf'<script[^>]*>[^<]*{mark}[^<]*</script>', body, re.I)
    in_handler = re.search(rf'on\w+\s*=\s*["\'][^"\']*{mark}', body, re.I)
    in_js_url = re.search(rf'(href|src)\s*=\s*["\']javascript:[^"\']*{mark}', body, re.I)

    if in_script:
        return ReflectionContext.SCRIPT, 'inside <script> tag'
    if in_handler:
        return ReflectionContext.SCRIPT, 'in event handler'
    if in_js_url:
        return ReflectionContext.SCRIPT, 'in javascript: URL'

    if re.search(rf'\w+\s*=\s*["\'][^"\']*{mark}[^"\']*["\']', body, re.I):
        encoded = any(entity in body for entity in ('&lt;', '&gt;', '&quot;'))
        return (
            ReflectionContext.ATTRIBUTE,
            'in attribute (properly encoded)' if encoded else 'in attribute (context-dependent)',
        )

    return ReflectionContext.BODY, 'in body text (non-executable context)'


def classify_response(status: int, headers: Dict[str, str], body: str, marker: str, url: str) -> ReflectionResult:
    """Turn one probe response into a ReflectionResult.

    A 3xx is never exploitable, whatever the Location header or body holds.
    """
    if 300 <= status < 400:
        reflected = marker in body or marker in headers.get('location', '')
        return ReflectionResult(
            vulnerable=False,
            reflected=reflected,
            details=(
                f"Input reflected in {status} redirect response (non-executable, safe)"
                if reflected else 'No reflection detected'
            ),
            context=ReflectionContext.REDIRECT,
        )

    context, where = classify_reflection(body, marker)
    if context is ReflectionContext.SAFE:
        return ReflectionResult(False, False, 'No reflection detected', context)

    if context is not ReflectionContext.SCRIPT:
        return ReflectionResult(False, True, f"Input reflected {where} (not exploitable)", context)

    evidence = build_evidence(
        url=url,
        proof_of_impact=f"Test string reflected {where} - potential XSS",
        request_headers=BROWSER_HEADERS,
        response_headers=headers,
        body=body,
        status=status,
        reproduction_steps=[
            f"Navigate to: {url}",
            f"Observe input reflected {where}",
            'Verify if payload execution is possible in this context',
        ],
    )
    return ReflectionResult(True, True, f"Input reflected {where}", context, evidence)


class ReflectionProbe:
    """Reflected-input context analysis.

    Reflection alone is not XSS - only executable placements count.
    """

    def __init__(self, session: aiohttp.ClientSession, timeout: float = 15.0):
        self.session = session
        self.timeout = timeout

    async def probe(self, target_url: str) -> ReflectionResult:
        marker = new_marker()
        url = with_query_param(target_url, REFLECTION_PARAM, marker)
        try:
            async with self.session.get(
                url,
                headers=BROWSER_HEADERS,
                allow_redirects=False,
                ssl=False,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                headers = lowercase_headers(resp.headers)
                body = await read_capped(resp, PROBE_BODY_LIMIT)
                return classify_response(resp.status, headers, body, marker, url)
        except asyncio.TimeoutError:
            return ReflectionResult(False, False, 'Test timed out', ReflectionContext.SAFE)
        except (aiohttp.ClientError, OSError, ValueError, LookupError) as e:
            logger.debug(f"Reflection probe failed for {target_url}: {e}")
            return ReflectionResult(False, False, 'Test could not complete', ReflectionContext.SAFE)


@dataclass(frozen=True)
class SQLErrorResult:
    vulnerable: bool
    details: str
    matched_pattern: Optional[str] = None
    evidence: Optional[Evidence] = None


def match_sql_error(body: str) -> Optional[str]:
    """Return the first SQL error signature found in `body`."""
    for pattern in SQL_ERROR_PATTERNS:
        if pattern.search(body):
            return pattern.pattern
    return None


class SQLErrorProbe:
    """Single-quote injection with database error fingerprinting."""

    def __init__(self, session: aiohttp.ClientSession, timeout: float = 15.0):
        self.session = session
        self.timeout = timeout

    async def probe(self, target_url: str) -> SQLErrorResult:
        url = with_query_param(target_url, SQLI_PARAM, SQLI_PAYLOAD)
        try:
            async with self.session.get(
                url,
                headers=BROWSER_HEADERS,
                allow_redirects=False,
                ssl=False,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                headers = lowercase_headers(resp.headers)
                body = await read_capped(resp, PROBE_BODY_LIMIT)
                status = resp.status
        except asyncio.TimeoutError:
            return SQLErrorResult(False, 'Test timed out')
        except (aiohttp.ClientError, OSError, ValueError, LookupError) as e:
            logger.debug(f"SQL error probe failed for {target_url}: {e}")
            return SQLErrorResult(False, 'Test could not complete')

        matched = match_sql_error(body)
        if not matched:
            return SQLErrorResult(False, 'No SQL errors detected')

        evidence = build_evidence(
            url=url,
            proof_of_impact=f"Pattern matched: {matched}",
            request_headers=BROWSER_HEADERS,
            response_headers=headers,
            body=body,
            status=status,
            reproduction_steps=[
                f"Open {url}",
                'Check response for database error messages indicating SQL injection risk',
            ],
        )
        return SQLErrorResult(True, 'SQL error message detected in response', matched, evidence)


@dataclass(frozen=True)
class DirectoryListingResult:
    found: bool
    paths: List[str] = field(default_factory=list)


class DirectoryListingProbe:
    """Look for auto-generated index pages on common asset folders."""

    def __init__(self, session: aiohttp.ClientSession, timeout: float = 10.0, paths: Optional[List[str]] = None):
        self.session = session
        self.timeout = timeout
        self.paths = paths or LISTING_PATHS

    async def _check_path(self, target_url: str, path: str) -> bool:
        try:
            async with self.session.get(
                with_path(target_url, path),
                headers=BROWSER_HEADERS,
                allow_redirects=False,
                ssl=False,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status != 200:
                    return False
                body = await read_capped(resp, LISTING_BODY_LIMIT)
                return bool(LISTING_RE.search(body))
        except (asyncio.TimeoutError, aiohttp.ClientError, OSError, ValueError, LookupError) as e:
            logger.debug(f"Directory listing check failed for {path}: {e}")
            return False

    async def probe(self, target_url: str) -> DirectoryListingResult:
        hits = await asyncio.gather(*(self._check_path(target_url, p) for p in self.paths))
        found = [path for path, hit in zip(self.paths, hits) if hit]
        return DirectoryListingResult(found=bool(found), paths=found)
