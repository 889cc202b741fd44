"""Email security probe - MX, SPF, DMARC, DKIM and BIMI records.

These are DNS-based checks for email authentication. Every lookup is
independent; one failing never hides the others.
"""

import asyncio
import logging
from typing import List, Optional

from shieldscan.util.types import EmailSecurityResult
from shieldscan.scanner.probes.dns_probe import DNSProbe

logger = logging.getLogger(__name__)

DKIM_SELECTORS = ['default', 'google', 'selector1', 'selector2', 'k1']


def find_record(records: List[str], needle: str) -> Optional[str]:
    """First TXT record containing `needle`."""
    for record in records:
        if needle in record:
            return record
    return None


class EmailProbe:
    """Email authentication record checker.

    DKIM selector discovery and BIMI are extended lookups, only run when
    asked (paid plans).
    """

    def __init__(self, dns_probe: DNSProbe):
        """Initialize with the DNS probe used for the rest of the scan."""
        self.dns = dns_probe

    async def _txt(self, name: str) -> List[str]:
        records, error = await self.dns.lookup(name, 'TXT')
        if error:
            logger.debug(f"TXT {name}: {error}")
        return records

    async def _find_dkim(self, hostname: str) -> Optional[str]:
        found = await asyncio.gather(
            *(self._txt(f"{selector}._domainkey.{hostname}") for selector in DKIM_SELECTORS)
        )
        for selector, records in zip(DKIM_SELECTORS, found):
            if records:
                return selector
        return None

    async def check(self, hostname: str, extended: bool = False) -> EmailSecurityResult:
        """Resolve the email authentication records for `hostname`.

        Returns EmailSecurityResult with:
          - spf/dmarc flags and the matching record text
          - dkim/dkim_selector and bimi when `extended` is set
          - mx_records sorted by priority
        """
        lookups = [
            self.dns.lookup(hostname, 'MX'),
            self._txt(hostname),
            self._txt(f"_dmarc.{hostname}"),
        ]
        if extended:
            lookups.append(self._find_dkim(hostname))
            lookups.append(self._txt(f"default._bimi.{hostname}"))

        results = await asyncio.gather(*lookups)
        (mx_records, _), txt_records, dmarc_records = results[:3]

        spf_record = find_record(txt_records, 'v=spf1')
        dmarc_record = find_record(dmarc_records, 'v=DMARC1')
        dkim_selector = results[3] if extended else None
        bimi = bool(results[4]) if extended else False

        return EmailSecurityResult(
            spf=spf_record is not None,
            spf_record=spf_record,
            dmarc=dmarc_record is not None,
            dmarc_record=dmarc_record,
            dkim=dkim_selector is not None,
            dkim_selector=dkim_selector,
            bimi=bimi,
            mx_records=sorted(mx_records, key=lambda mx: mx.priority),
        )
