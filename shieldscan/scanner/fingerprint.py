"""Table-driven fingerprinting: CDN, WAF, technologies, page-level JS risks.

Every table is an ordered dict and is walked in insertion order; the first
matching entry wins where a single answer is needed. None of these helpers
touch the network - they read data the probes already collected.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from shieldscan.util.types import TechnologyInfo

logger = logging.getLogger(__name__)


def _rx(*patterns: str) -> List[re.Pattern]:
    return [re.compile(p, re.I) for p in patterns]


CDN_PATTERNS: Dict[str, List[re.Pattern]] = {
    'Cloudflare': _rx(r'cloudflare', r'cf-ray'),
    'AWS CloudFront': _rx(r'cloudfront', r'x-amz-cf'),
    'Fastly': _rx(r'fastly'),
    'Akamai': _rx(r'akamai'),
    'Vercel': _rx(r'vercel', r'x-vercel'),
    'Netlify': _rx(r'netlify'),
    'Google Cloud': _rx(r'google', r'gws'),
}

WAF_SIGNATURES: Dict[str, List[re.Pattern]] = {
    'Cloudflare': _rx(r'cloudflare', r'cf-ray', r'__cfduid'),
    'AWS WAF': _rx(r'awswaf', r'x-amzn-requestid'),
    'Akamai': _rx(r'akamai', r'x-akamai'),
    'Imperva': _rx(r'imperva', r'incapsula', r'visid_incap'),
    'Sucuri': _rx(r'sucuri', r'x-sucuri'),
    'ModSecurity': _rx(r'mod_security', r'modsecurity'),
    'F5 BIG-IP': _rx(r'bigip', r'f5'),
    'Barracuda': _rx(r'barracuda'),
    'Fortinet': _rx(r'fortigate', r'fortiweb'),
    'Wordfence': _rx(r'wordfence'),
}

GENERIC_WAF_HEADERS = ('x-protected-by', 'x-waf-status', 'x-firewall')

# name -> (patterns, category)
TECH_PATTERNS: Dict[str, Tuple[List[re.Pattern], str]] = {
    'WordPress': (_rx(r'wp-content', r'wp-includes', r'wordpress', r'wp-json'), 'CMS'),
    'Drupal': (_rx(r'drupal', r'sites/default'), 'CMS'),
    'Joomla': (_rx(r'joomla', r'com_content'), 'CMS'),
    'Shopify': (_rx(r'shopify', r'cdn\.shopify'), 'E-commerce'),
    'Magento': (_rx(r'magento', r'mage'), 'E-commerce'),
    'WooCommerce': (_rx(r'woocommerce', r'wc-'), 'E-commerce'),
    'React': (_rx(r'react', r'__react'), 'Framework'),
    'Next.js': (_rx(r'_next', r'__next', r'next\.js'), 'Framework'),
    'Vue.js': (_rx(r'vue', r'vuejs'), 'Framework'),
    'Angular': (_rx(r'angular', r'ng-'), 'Framework'),
    'jQuery': (_rx(r'jquery'), 'Library'),
    'Bootstrap': (_rx(r'bootstrap'), 'CSS Framework'),
    'Tailwind CSS': (_rx(r'tailwind'), 'CSS Framework'),
    'PHP': (_rx(r'php', r'\.php'), 'Language'),
    'ASP.NET': (_rx(r'asp\.net', r'aspnet', r'\.aspx'), 'Framework'),
    'Node.js': (_rx(r'node', r'express'), 'Runtime'),
    'Python': (_rx(r'python', r'django', r'flask'), 'Language'),
    'Ruby on Rails': (_rx(r'rails', r'ruby'), 'Framework'),
    'Laravel': (_rx(r'laravel'), 'Framework'),
    'Nginx': (_rx(r'nginx'), 'Server'),
    'Apache': (_rx(r'apache'), 'Server'),
    'IIS': (_rx(r'iis', r'microsoft'), 'Server'),
    'Cloudflare': (_rx(r'cloudflare'), 'CDN/Security'),
    'Google Analytics': (_rx(r'google-analytics', r'gtag', r'ga\.js', r'analytics\.js'), 'Analytics'),
    'Google Tag Manager': (_rx(r'googletagmanager', r'gtm\.js'), 'Analytics'),
    'Facebook Pixel': (_rx(r'facebook.*pixel', r'fbevents'), 'Analytics'),
    'Hotjar': (_rx(r'hotjar'), 'Analytics'),
    'Stripe': (_rx(r'stripe', r'js\.stripe'), 'Payment'),
    'PayPal': (_rx(r'paypal'), 'Payment'),
}

# Simplified known-vulnerable version ranges, matched against the page
VULNERABLE_LIBRARIES: Dict[str, re.Pattern] = {
    'jQuery < 3.5.0': re.compile(r'jquery[/\-]([1-2]\.\d+\.\d+|3\.[0-4]\.\d+)', re.I),
    'Angular < 1.6.0': re.compile(r'angular[/\-]1\.[0-5]\.\d+', re.I),
    'Bootstrap < 4.3.1': re.compile(r'bootstrap[/\-]([1-3]\.\d+\.\d+|4\.[0-2]\.\d+|4\.3\.0)', re.I),
    'Lodash < 4.17.21': re.compile(r'lodash[/\-]4\.17\.(0|1[0-9]|20)', re.I),
}

HIGH_RISK_SCRIPT_HOSTS = _rx(r'cdn\.jsdelivr', r'unpkg\.com', r'cdnjs\.cloudflare')

INLINE_SCRIPT_RE = re.compile(r'<script(?![^>]*src=)[^>]*>', re.I)
EVAL_RE = re.compile(r'\beval\s*\(|\bnew\s+Function\s*\(|setTimeout\s*\(\s*["\']', re.I)

MIXED_CONTENT_PATTERNS = [
    re.compile(r'src\s*=\s*["\']?(http://[^"\'\s>]+)', re.I),
    re.compile(r'href\s*=\s*["\']?(http://[^"\'\s>]+)', re.I),
    re.compile(r'url\s*\(\s*["\']?(http://[^"\'\s)]+)', re.I),
]


def _serialize_headers(headers: Dict[str, str]) -> str:
    return json.dumps(headers or {}).lower()


def detect_cdn(ns_records: List[str], hostname: str) -> Optional[str]:
    """Name the CDN whose pattern matches the NS set or the hostname."""
    corpus = ' '.join(ns_records).lower()
    for provider, patterns in CDN_PATTERNS.items():
        for pattern in patterns:
            if pattern.search(corpus) or pattern.search(hostname):
                return provider
    return None


def detect_waf(headers: Dict[str, str]) -> Optional[str]:
    """Name the WAF vendor visible in the response headers, if any."""
    corpus = _serialize_headers(headers)
    for provider, patterns in WAF_SIGNATURES.items():
        if any(p.search(corpus) for p in patterns):
            return provider

    if any(headers.get(name) for name in GENERIC_WAF_HEADERS):
        return 'Generic WAF'
    return None


def header_technology_hints(headers: Dict[str, str]) -> List[str]:
    """Technology names visible from headers alone, in table order."""
    corpus = _serialize_headers(headers)
    return [
        name for name, (patterns, _) in TECH_PATTERNS.items()
        if any(p.search(corpus) for p in patterns)
    ]


def detect_technologies(content: str, headers: Dict[str, str]) -> List[TechnologyInfo]:
    """Fingerprint technologies from page body plus serialized headers.

    A version string near the name bumps confidence from 70 to 90.
    """
    corpus = (content or '') + _serialize_headers(headers)
    detected = []

    for name, (patterns, category) in TECH_PATTERNS.items():
        if not any(p.search(corpus) for p in patterns):
            continue
        version_match = re.search(
            re.escape(name) + r'[/\-]?(\d+\.\d+(?:\.\d+)?)', corpus, re.I
        )
        version = version_match.group(1) if version_match else None
        detected.append(TechnologyInfo(
            name=name,
            category=category,
            version=version,
            confidence=90 if version else 70,
        ))

    return detected


@dataclass
class MixedContent:
    found: bool
    count: int
    examples: List[str] = field(default_factory=list)


def check_mixed_content(content: str) -> MixedContent:
    """Collect plain-http resources referenced from the page."""
    resources: List[str] = []
    for pattern in MIXED_CONTENT_PATTERNS:
        for match in pattern.finditer(content or ''):
            url = match.group(1)
            if url and url not in resources:
                resources.append(url)

    return MixedContent(found=bool(resources), count=len(resources), examples=resources[:5])


@dataclass
class JavaScriptSecurity:
    vulnerable_libraries: List[str] = field(default_factory=list)
    has_inline_scripts: bool = False
    has_eval: bool = False


def check_javascript_security(content: str) -> JavaScriptSecurity:
    content = content or ''
    return JavaScriptSecurity(
        vulnerable_libraries=[
            name for name, pattern in VULNERABLE_LIBRARIES.items() if pattern.search(content)
        ],
        has_inline_scripts=bool(INLINE_SCRIPT_RE.search(content)),
        has_eval=bool(EVAL_RE.search(content)),
    )


@dataclass
class ThirdPartyScripts:
    scripts: List[str] = field(default_factory=list)
    domains: List[str] = field(default_factory=list)
    high_risk_count: int = 0


def analyze_third_party_scripts(content: str, own_hostname: str) -> ThirdPartyScripts:
    """Find external .js files loaded from hosts other than our own.

    Scripts served from public package CDNs count as high risk (supply chain),
    but never block the scan.
    """
    result = ThirdPartyScripts()
    if not content:
        return result

    soup = BeautifulSoup(content, 'html.parser')
    for tag in soup.find_all('script', src=True):
        src = tag['src'].strip()
        parsed = urlparse(src)
        if parsed.scheme not in ('http', 'https') or not parsed.hostname:
            continue
        if '.js' not in parsed.path.lower():
            continue
        if parsed.hostname == own_hostname:
            continue

        result.scripts.append(src)
        if parsed.hostname not in result.domains:
            result.domains.append(parsed.hostname)
        if any(p.search(src) for p in HIGH_RISK_SCRIPT_HOSTS):
            result.high_risk_count += 1

    logger.debug(f"Third-party scripts: {len(result.scripts)} ({result.high_risk_count} high-risk)")
    return result
