"""Evidence construction and response-body sanitizing.

Response bodies are untrusted and often compressed, encrypted or simply
binary. Nothing reaches an Evidence record without passing through
make_body_preview first.
"""

import math
import re
from collections import Counter
from typing import Dict, List, Optional

from shieldscan.util.types import (
    CheckStatus, Evidence, FindingType, RequestEvidence, ResponseEvidence,
)
from shieldscan.util.time import iso_now

BINARY_PLACEHOLDER = '[Binary/encrypted response - not displayed]'
EMPTY_PLACEHOLDER = '[Empty or binary response]'

DEFAULT_PREVIEW_LIMIT = 400

# Tab, LF, CR and printable ASCII
_PRINTABLE = re.compile(r'[\x09\x0A\x0D\x20-\x7E]')
_NON_PRINTABLE = re.compile(r'[^\x09\x0A\x0D\x20-\x7E]')
_WHITESPACE = re.compile(r'\s+')

NON_PRINTABLE_RATIO = 0.1
ENTROPY_THRESHOLD = 6.0
ENTROPY_WINDOW = 1000
MAGIC_WINDOW = 100

BINARY_PATTERNS = [
    re.compile(r'^\x16\x03'),                       # TLS handshake record
    re.compile(r'^PRI \* HTTP/2'),                  # HTTP/2 connection preface
    re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F]{3,}'),  # runs of control chars
]

# Only these finding types can carry evidence, and only while failing
EVIDENCE_FINDING_TYPES = frozenset({FindingType.VULNERABILITY})
EVIDENCE_STATUSES = frozenset({CheckStatus.WARNING, CheckStatus.FAILED, CheckStatus.ERROR})


def shannon_entropy(text: str) -> float:
    """Bits per character of `text`."""
    if not text:
        return 0.0
    length = len(text)
    entropy = 0.0
    for count in Counter(text).values():
        p = count / length
        entropy -= p * math.log2(p)
    return entropy


def is_binary_content(body: str) -> bool:
    """Heuristic binary/encrypted detection.

    Any one of three independent signals is enough:
      - more than 10% non-printable characters
      - Shannon entropy above 6 bits/char over the first 1000 chars
      - a known binary prefix or a run of control characters early on
    """
    if not body:
        return False

    non_printable = len(body) - len(_PRINTABLE.findall(body))
    if non_printable / len(body) > NON_PRINTABLE_RATIO:
        return True

    if shannon_entropy(body[:ENTROPY_WINDOW]) > ENTROPY_THRESHOLD:
        return True

    head = body[:MAGIC_WINDOW]
    return any(pattern.search(head) for pattern in BINARY_PATTERNS)


def make_body_preview(body: Optional[str], limit: int = DEFAULT_PREVIEW_LIMIT) -> str:
    """Return a display-safe preview of a response body.

    Binary content is replaced by a placeholder. Printable content has stray
    control characters blanked, whitespace collapsed and is cut to `limit`.
    Feeding the output back in returns it unchanged.
    """
    if not body:
        return ''

    if is_binary_content(body):
        return BINARY_PLACEHOLDER

    cleaned = _NON_PRINTABLE.sub(' ', body)
    preview = _WHITESPACE.sub(' ', cleaned).strip()

    # Cleaning threw away most of it - treat as binary
    if len(preview) < len(body) * 0.5 and len(body) > 50:
        return BINARY_PLACEHOLDER

    if not preview:
        return EMPTY_PLACEHOLDER

    return preview[:limit]


def evidence_applies(finding_type: FindingType, status: CheckStatus) -> bool:
    """Whether a check of this type and status is allowed to carry evidence."""
    return finding_type in EVIDENCE_FINDING_TYPES and status in EVIDENCE_STATUSES


def build_evidence(
    url: str,
    proof_of_impact: str,
    request_headers: Optional[Dict[str, str]] = None,
    response_headers: Optional[Dict[str, str]] = None,
    body: Optional[str] = None,
    status: int = 0,
    method: str = 'GET',
    reproduction_steps: Optional[List[str]] = None,
) -> Evidence:
    """Assemble an Evidence record with a sanitized body preview.

    `status` defaults to 0, meaning the status of the original page fetch
    was not tied to this finding.
    """
    return Evidence(
        request=RequestEvidence(
            method=method,
            url=url,
            headers=dict(request_headers or {}),
        ),
        response=ResponseEvidence(
            status=status,
            headers=dict(response_headers or {}),
            body_preview=make_body_preview(body) if body else None,
        ),
        proof_of_impact=proof_of_impact,
        reproduction_steps=reproduction_steps,
        timestamp=iso_now(),
    )
