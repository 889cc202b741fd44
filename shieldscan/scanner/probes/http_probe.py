"""HTTP probe - fetch the target page the way a browser would.

Collects lowercased response headers, the security header table, server
hints and up to 500KB of body for later checks. Redirects are followed by
hand so every hop shares one shrinking time budget. Transient failures are
retried on a fixed schedule described by RetryPlan.
"""

import asyncio
import codecs
import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple
from urllib.parse import urljoin

import aiohttp

from shieldscan.util.types import (
    AuthConfig, CheckStatus, HeaderCheck, HeadersResult, SecurityHeaders, ServerInfo,
)
from shieldscan.util.time import now_utc, duration_ms
from shieldscan.scanner.fingerprint import header_technology_hints

logger = logging.getLogger(__name__)

# Desktop Chrome 120 - plain scanner user agents get blocked by WAFs
BROWSER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
                  '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,'
              'image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7',
    'Accept-Language': 'en-US,en;q=0.9',
    'Accept-Encoding': 'gzip, deflate, br',
    'Cache-Control': 'no-cache',
    'Pragma': 'no-cache',
    'Sec-Ch-Ua': '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    'Sec-Ch-Ua-Mobile': '?0',
    'Sec-Ch-Ua-Platform': '"Windows"',
    'Sec-Fetch-Dest': 'document',
    'Sec-Fetch-Mode': 'navigate',
    'Sec-Fetch-Site': 'none',
    'Sec-Fetch-User': '?1',
    'Upgrade-Insecure-Requests': '1',
}

MAX_BODY_BYTES = 500_000
READ_CHUNK = 16 * 1024
REDIRECT_PENALTY = 5.0
REDIRECT_STATUSES = range(300, 400)

SECURITY_HEADER_NAMES = {
    'content_security_policy': 'content-security-policy',
    'x_frame_options': 'x-frame-options',
    'x_content_type_options': 'x-content-type-options',
    'referrer_policy': 'referrer-policy',
    'strict_transport_security': 'strict-transport-security',
    'x_xss_protection': 'x-xss-protection',
    'permissions_policy': 'permissions-policy',
}


@dataclass(frozen=True)
class RetryPlan:
    """Retry schedule for the page fetch.

    Attempt n (0-based) waits n * backoff seconds, then gets
    base_timeout + n * timeout_step seconds. With the defaults that is
    delays 0/1/2s and timeouts 20/25/30s.
    """
    max_attempts: int = 3
    base_timeout: float = 20.0
    timeout_step: float = 5.0
    backoff: float = 1.0

    def schedule(self, attempt: int) -> Tuple[float, float]:
        """Return (delay_before, timeout) for a 0-based attempt."""
        return self.backoff * attempt, self.base_timeout + attempt * self.timeout_step


def build_request_headers(auth: Optional[AuthConfig] = None) -> Dict[str, str]:
    """Browser headers, overlaid with caller auth headers and cookie."""
    headers = dict(BROWSER_HEADERS)
    if auth:
        headers.update(auth.headers or {})
        if auth.cookie_header:
            headers['Cookie'] = auth.cookie_header
    return headers


def lowercase_headers(headers) -> Dict[str, str]:
    """Flatten a multidict to lowercase keys.

    Repeated Set-Cookie headers are kept one per line; any other repeated
    header keeps its last value.
    """
    raw: Dict[str, str] = {}
    for key, value in headers.items():
        name = key.lower()
        if name == 'set-cookie' and name in raw:
            raw[name] = raw[name] + '\n' + value
        else:
            raw[name] = value
    return raw


def build_security_headers(raw: Dict[str, str]) -> SecurityHeaders:
    def check(name: str) -> HeaderCheck:
        value = raw.get(name)
        return HeaderCheck(
            present=bool(value),
            value=value or None,
            status=CheckStatus.PASSED if value else CheckStatus.FAILED,
        )

    return SecurityHeaders(**{attr: check(name) for attr, name in SECURITY_HEADER_NAMES.items()})


def build_server_info(raw: Dict[str, str]) -> ServerInfo:
    server = raw.get('server')
    return ServerInfo(
        server=server,
        powered_by=raw.get('x-powered-by'),
        technology=header_technology_hints(raw),
        server_exposed=bool(server and any(c.isdigit() or c == '.' for c in server)),
    )


def empty_headers() -> HeadersResult:
    return HeadersResult(raw={}, security=build_security_headers({}))


@dataclass(frozen=True)
class FetchResult:
    """Outcome of the page fetch. Empty raw headers mean unreachable."""
    url: str
    final_url: str
    success: bool
    headers: HeadersResult
    server: ServerInfo
    content: str = ""
    status: Optional[int] = None
    response_time_ms: float = 0.0
    attempts: int = 0
    error: Optional[str] = None


def body_encoding(charset: Optional[str]) -> str:
    """Codec for a declared charset, utf-8 when missing or unknown."""
    if not charset:
        return 'utf-8'
    try:
        return codecs.lookup(charset).name
    except LookupError:
        logger.debug(f"Unknown charset {charset!r}, decoding as utf-8")
        return 'utf-8'


async def read_capped(resp: aiohttp.ClientResponse, limit: int) -> str:
    """Read at most `limit` bytes of body and decode leniently."""
    body = bytearray()
    async for chunk in resp.content.iter_chunked(READ_CHUNK):
        body.extend(chunk)
        if len(body) >= limit:
            break
    return bytes(body[:limit]).decode(body_encoding(resp.charset), errors='replace')


class HTTPFetcher:
    """Async page fetcher with manual redirects and retry/backoff.

    Uses a caller-owned aiohttp session so one scan shares one pool.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        retry_plan: Optional[RetryPlan] = None,
        max_body_bytes: int = MAX_BODY_BYTES,
    ):
        """Initialize fetcher with session, retry schedule and body cap."""
        self.session = session
        self.retry_plan = retry_plan or RetryPlan()
        self.max_body_bytes = max_body_bytes

    async def fetch_once(self, url: str, timeout: float, auth: Optional[AuthConfig] = None) -> FetchResult:
        """One attempt, following redirects while budget remains.

        Each hop costs REDIRECT_PENALTY seconds of budget; when the budget
        runs out the attempt fails.
        """
        headers = build_request_headers(auth)
        current = url
        budget = timeout

        try:
            while budget > 0:
                async with self.session.get(
                    current,
                    headers=headers,
                    allow_redirects=False,
                    ssl=False,
                    timeout=aiohttp.ClientTimeout(total=budget),
                ) as resp:
                    location = resp.headers.get('Location')
                    if resp.status in REDIRECT_STATUSES and location:
                        logger.debug(f"Redirect {resp.status}: {current} -> {location}")
                        current = urljoin(current, location)
                        budget -= REDIRECT_PENALTY
                        continue

                    raw = lowercase_headers(resp.headers)
                    content = await read_capped(resp, self.max_body_bytes)
                    return FetchResult(
                        url=url,
                        final_url=current,
                        success=True,
                        headers=HeadersResult(raw=raw, security=build_security_headers(raw)),
                        server=build_server_info(raw),
                        content=content,
                        status=resp.status,
                    )

            return self._failure(url, current, "redirect budget exhausted")

        except asyncio.TimeoutError:
            return self._failure(url, current, "Request timeout")
        except aiohttp.ClientError as e:
            return self._failure(url, current, f"HTTP error: {type(e).__name__}: {e}")
        except (OSError, ValueError, LookupError) as e:
            return self._failure(url, current, f"Connection error: {e}")

    def _failure(self, url: str, final_url: str, error: str) -> FetchResult:
        return FetchResult(
            url=url,
            final_url=final_url,
            success=False,
            headers=empty_headers(),
            server=ServerInfo(),
            error=error,
        )

    async def fetch(self, url: str, auth: Optional[AuthConfig] = None) -> FetchResult:
        """Fetch with retries.

        Returns the first successful FetchResult, or the last failed one once
        every attempt is spent. response_time_ms covers all attempts.
        """
        start = now_utc()
        result = None

        for attempt in range(self.retry_plan.max_attempts):
            delay, timeout = self.retry_plan.schedule(attempt)
            if delay > 0:
                await asyncio.sleep(delay)

            result = await self.fetch_once(url, timeout, auth)
            if result.success:
                break
            logger.info(f"HTTP attempt {attempt + 1} for {url} failed: {result.error}")

        return replace(result, response_time_ms=duration_ms(start), attempts=attempt + 1)
