"""TLS probe - handshake on 443 to read the certificate and negotiated protocol.

The probe makes up to two connections. The first handshake verifies chain
and hostname through the default context. If that fails, the reason is
recorded and a second connection with verification off (CERT_NONE, no
hostname check) collects the certificate for inspection. A verified target
costs one connection. The probe never raises: every failure ends up in
SSLResult.errors with valid=False.
"""

import asyncio
import logging
import math
import ssl
from datetime import datetime
from typing import Optional, Tuple

from cryptography import x509
from cryptography.x509.oid import NameOID

from shieldscan.util.types import SSLResult
from shieldscan.util.time import now_utc, duration_ms

logger = logging.getLogger(__name__)


def _first_attribute(name: x509.Name, oid) -> Optional[str]:
    values = name.get_attributes_for_oid(oid)
    return str(values[0].value) if values else None


def display_issuer(name: x509.Name) -> str:
    """Organization, then Common Name, then the full RFC 4514 string."""
    return (
        _first_attribute(name, NameOID.ORGANIZATION_NAME)
        or _first_attribute(name, NameOID.COMMON_NAME)
        or name.rfc4514_string()
        or 'Unknown'
    )


def display_subject(name: x509.Name) -> str:
    """Common Name, then Organization, then the full RFC 4514 string."""
    return (
        _first_attribute(name, NameOID.COMMON_NAME)
        or _first_attribute(name, NameOID.ORGANIZATION_NAME)
        or name.rfc4514_string()
        or 'Unknown'
    )


def parse_certificate(der: bytes, now: Optional[datetime] = None) -> dict:
    """Extract the fields SSLResult needs from a DER certificate.

    days_until_expiry is floored, so a cert expiring in 2h is 0 days and an
    expired one goes negative.
    """
    cert = x509.load_der_x509_certificate(der)
    now = now or now_utc()
    not_before = cert.not_valid_before_utc
    not_after = cert.not_valid_after_utc
    remaining = (not_after - now).total_seconds() / 86400

    return {
        'issuer': display_issuer(cert.issuer),
        'subject': display_subject(cert.subject),
        'valid_from': not_before.isoformat(),
        'valid_to': not_after.isoformat(),
        'days_until_expiry': math.floor(remaining),
        'self_signed': cert.issuer == cert.subject,
    }


class TLSProbe:
    """Async TLS handshake for certificate and protocol checks.

    Does a quick handshake to grab cert details without an HTTP exchange.
    """

    def __init__(self, timeout: float = 10.0, port: int = 443):
        """Initialize TLS probe with timeout and port."""
        self.timeout = timeout
        self.port = port

    async def _handshake(self, hostname: str, context: ssl.SSLContext) -> Tuple[bytes, str, str]:
        reader, writer = await asyncio.open_connection(
            hostname, self.port, ssl=context, server_hostname=hostname
        )
        try:
            ssl_obj = writer.get_extra_info('ssl_object')
            if ssl_obj is None:
                raise ssl.SSLError("No SSL object in connection")
            der = ssl_obj.getpeercert(binary_form=True)
            cipher = ssl_obj.cipher()
            return der, ssl_obj.version() or '', cipher[0] if cipher else ''
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ssl.SSLError, ConnectionError):
                pass

    async def _inspect(self, hostname: str) -> SSLResult:
        errors = []
        verified = True

        try:
            der, protocol, cipher = await self._handshake(hostname, ssl.create_default_context())
        except ssl.SSLCertVerificationError as e:
            verified = False
            errors.append(e.verify_message or str(e))

            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            der, protocol, cipher = await self._handshake(hostname, context)

        if not der:
            errors.append("Server presented no certificate")
            return SSLResult(valid=False, protocol=protocol, cipher=cipher, errors=errors)

        fields = parse_certificate(der)
        return SSLResult(
            valid=verified,
            protocol=protocol,
            cipher=cipher,
            errors=errors,
            **fields,
        )

    async def probe(self, hostname: str) -> SSLResult:
        """Perform TLS handshake and extract certificate details.

        Returns SSLResult with:
          - valid=True only if the chain and hostname verified
          - issuer/subject/expiry/self_signed from the peer certificate
          - protocol and cipher as negotiated
          - errors describing anything that went wrong
        """
        start = now_utc()
        try:
            result = await asyncio.wait_for(self._inspect(hostname), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug(f"TLS timeout for {hostname}:{self.port}")
            return SSLResult(valid=False, errors=["Connection timeout"])
        except ssl.SSLError as e:
            logger.debug(f"TLS SSL error for {hostname}:{self.port}: {e}")
            return SSLResult(valid=False, errors=[f"SSL error: {e}"])
        except OSError as e:
            logger.debug(f"TLS connection error for {hostname}:{self.port}: {e}")
            return SSLResult(valid=False, errors=[str(e) or type(e).__name__])
        except Exception as e:
            logger.warning(f"TLS error for {hostname}:{self.port}: {e}")
            return SSLResult(valid=False, errors=[f"TLS error: {e}"])

        logger.debug(
            f"TLS {hostname}: valid={result.valid} {result.protocol} "
            f"expires in {result.days_until_expiry}d ({duration_ms(start):.0f}ms)"
        )
        return result
