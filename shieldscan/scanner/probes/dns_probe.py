"""DNS probe - resolve every record type the checks need.

This is the first step for any target: can we even resolve it?
Each record type is an independent lookup. One failing (NXDOMAIN,
NoAnswer, timeout) just leaves that list empty.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

import dns.asyncresolver
import dns.exception

from shieldscan.util.types import DNSResult, MXRecord
from shieldscan.util.time import now_utc, duration_ms
from shieldscan.scanner.fingerprint import detect_cdn

logger = logging.getLogger(__name__)

RECORD_TYPES = ('A', 'AAAA', 'NS', 'MX', 'TXT', 'CAA')


def _text(value) -> str:
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return str(value)


def format_rdata(rdtype: str, rdata) -> object:
    """Turn a dnspython rdata into the plain value we store."""
    if rdtype in ('A', 'AAAA'):
        return rdata.address
    if rdtype == 'NS':
        return _text(rdata.target).rstrip('.')
    if rdtype == 'MX':
        return MXRecord(exchange=_text(rdata.exchange).rstrip('.'), priority=int(rdata.preference))
    if rdtype == 'TXT':
        return ''.join(_text(s) for s in rdata.strings)
    if rdtype == 'CAA':
        critical = '!' if rdata.flags & 128 else ''
        return f"{critical}{_text(rdata.tag)}={_text(rdata.value)}"
    return rdata.to_text()


class DNSProbe:
    """Async DNS resolver built on dnspython.

    Fires all lookups for a host at once and folds them into one DNSResult.
    """

    def __init__(self, timeout: float = 5.0, resolver: Optional[dns.asyncresolver.Resolver] = None):
        """Initialize DNS probe with a per-lookup timeout."""
        self.timeout = timeout
        self.resolver = resolver

    def _get_resolver(self) -> dns.asyncresolver.Resolver:
        if self.resolver is None:
            self.resolver = dns.asyncresolver.Resolver()
            self.resolver.lifetime = self.timeout
        return self.resolver

    async def lookup(self, name: str, rdtype: str) -> Tuple[List, Optional[str]]:
        """Resolve one record type.

        Returns (values, error) - never raises for DNS failures.
        """
        try:
            answer = await self._get_resolver().resolve(name, rdtype)
            return [format_rdata(rdtype, r) for r in answer], None
        except dns.exception.Timeout:
            return [], "timeout"
        except dns.exception.DNSException as e:
            return [], type(e).__name__
        except Exception as e:
            logger.warning(f"Unexpected DNS error for {name} {rdtype}: {e}")
            return [], f"Unexpected error: {e}"

    async def has_dnssec(self, hostname: str) -> bool:
        """DNSKEY presence. Absence is common and not an error."""
        records, _ = await self.lookup(hostname, 'DNSKEY')
        return bool(records)

    async def resolve(self, hostname: str) -> DNSResult:
        """Resolve A, AAAA, NS, MX, TXT, CAA and DNSKEY for `hostname`.

        Returns DNSResult with:
          - resolved=True if any A or AAAA record came back
          - has_cdn/cdn_provider from the NS set and hostname
          - has_dnssec if DNSKEY exists
          - errors keyed by record type for lookups that failed
        """
        start = now_utc()

        lookups = await asyncio.gather(
            *(self.lookup(hostname, rdtype) for rdtype in RECORD_TYPES),
            self.has_dnssec(hostname),
        )
        *record_results, dnssec = lookups

        values: Dict[str, List] = {}
        errors: Dict[str, str] = {}
        for rdtype, (records, error) in zip(RECORD_TYPES, record_results):
            values[rdtype] = records
            if error:
                errors[rdtype] = error

        cdn_provider = detect_cdn(values['NS'], hostname)

        result = DNSResult(
            hostname=hostname,
            resolved=bool(values['A'] or values['AAAA']),
            ip_addresses=values['A'],
            ipv6_addresses=values['AAAA'],
            mx_records=sorted(values['MX'], key=lambda mx: mx.priority),
            ns_records=values['NS'],
            txt_records=values['TXT'],
            caa_records=values['CAA'],
            has_cdn=cdn_provider is not None,
            cdn_provider=cdn_provider,
            has_dnssec=dnssec,
            errors=errors,
        )

        logger.debug(
            f"DNS {hostname}: resolved={result.resolved} "
            f"A={len(result.ip_addresses)} AAAA={len(result.ipv6_addresses)} "
            f"cdn={cdn_provider} ({duration_ms(start):.0f}ms)"
        )
        return result
