"""Shared fixtures: probe snapshots and a local aiohttp server runner."""

import pytest
import aiohttp
from aiohttp.test_utils import TestServer

from shieldscan.util.types import DNSResult, HeadersResult, SSLResult
from shieldscan.scanner.checks.evaluator import ScanData
from shieldscan.scanner.probes.http_probe import (
    FetchResult, build_security_headers, build_server_info,
)

SECURE_HEADERS = {
    'Strict-Transport-Security': 'max-age=31536000',
    'X-Frame-Options': 'DENY',
    'X-Content-Type-Options': 'nosniff',
}


def make_fetch(headers=None, content='<html><body>ok</body></html>', status=200,
               success=True, response_time_ms=120.0, error=None, url='https://example.com'):
    raw = {k.lower(): v for k, v in (headers or {}).items()} if success else {}
    return FetchResult(
        url=url,
        final_url=url,
        success=success,
        headers=HeadersResult(raw=raw, security=build_security_headers(raw)),
        server=build_server_info(raw),
        content=content if success else '',
        status=status if success else None,
        response_time_ms=response_time_ms,
        attempts=1,
        error=error,
    )


def make_dns(hostname='example.com', ipv4=('93.184.216.34',), ipv6=(), **kwargs):
    return DNSResult(
        hostname=hostname,
        resolved=bool(ipv4 or ipv6),
        ip_addresses=list(ipv4),
        ipv6_addresses=list(ipv6),
        **kwargs
    )


def make_ssl(days=200, protocol='TLSv1.3', valid=True, **kwargs):
    return SSLResult(
        valid=valid,
        issuer="Let's Encrypt",
        subject='example.com',
        days_until_expiry=days,
        protocol=protocol,
        cipher='TLS_AES_128_GCM_SHA256',
        **kwargs
    )


def make_scan_data(url='https://example.com', **overrides):
    fields = {
        'url': url,
        'hostname': 'example.com',
        'is_https': url.startswith('https://'),
        'dns': make_dns(),
        'ssl': make_ssl() if url.startswith('https://') else None,
        'fetch': make_fetch(headers=SECURE_HEADERS, url=url),
    }
    fields.update(overrides)
    return ScanData(**fields)


@pytest.fixture
def fetch_factory():
    return make_fetch


@pytest.fixture
def dns_factory():
    return make_dns


@pytest.fixture
def ssl_factory():
    return make_ssl


@pytest.fixture
def scan_data_factory():
    return make_scan_data


@pytest.fixture
def serve():
    """Run `fn(session, base_url)` against an aiohttp app on localhost.

    Returns a coroutine function; wrap calls in asyncio.run.
    """
    async def _serve(app, fn):
        server = TestServer(app)
        await server.start_server()
        try:
            async with aiohttp.ClientSession() as session:
                return await fn(session, str(server.make_url('/')))
        finally:
            await server.close()

    return _serve
