"""Exposure probes - well-known files and robots.txt.

Sensitive files are checked with HEAD only; a 200 means the file is being
served. robots.txt and sitemap.xml are meant to be public and are tracked
separately so they can never be reported as sensitive.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

import aiohttp

from shieldscan.util.types import RobotsInfo
from shieldscan.util.concurrency import ConcurrencyController
from shieldscan.scanner.probes.http_probe import BROWSER_HEADERS, read_capped
from shieldscan.scanner.probes.vuln_probe import with_path

logger = logging.getLogger(__name__)

PUBLIC_FILES = ['/robots.txt', '/sitemap.xml']

SENSITIVE_FILES = [
    '/.env', '/.git/config', '/config.php', '/wp-config.php',
    '/database.sql', '/.htaccess', '/backup.zip', '/dump.sql',
    '/phpinfo.php', '/server-status', '/.svn/entries',
]

SENSITIVE_ROBOTS_PATTERNS = [
    re.compile(p, re.I) for p in (
        r'admin', r'login', r'wp-admin', r'backup', r'config',
        r'database', r'private', r'secret', r'\.git', r'\.env',
        r'api', r'internal', r'staging', r'test', r'dev',
    )
]

ROBOTS_BODY_LIMIT = 100_000


@dataclass(frozen=True)
class SensitiveFilesResult:
    found: bool
    files: List[str] = field(default_factory=list)
    public_files: List[str] = field(default_factory=list)


class SensitiveFileProbe:
    """HEAD each well-known path, bounded by a per-scan concurrency limit."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        controller: Optional[ConcurrencyController] = None,
        timeout: float = 5.0,
    ):
        self.session = session
        self.controller = controller or ConcurrencyController()
        self.timeout = timeout

    async def exists(self, target_url: str, path: str) -> bool:
        """True if HEAD on `path` answers 200."""
        async with self.controller.acquire():
            try:
                async with self.session.head(
                    with_path(target_url, path),
                    headers=BROWSER_HEADERS,
                    allow_redirects=False,
                    ssl=False,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    return resp.status == 200
            except (asyncio.TimeoutError, aiohttp.ClientError, OSError, ValueError) as e:
                logger.debug(f"HEAD {path} failed: {e}")
                return False

    async def _present(self, target_url: str, paths: List[str]) -> List[str]:
        hits = await asyncio.gather(*(self.exists(target_url, p) for p in paths))
        return [path for path, hit in zip(paths, hits) if hit]

    async def probe(self, target_url: str) -> SensitiveFilesResult:
        """Check public and sensitive lists; results keep list order."""
        public, sensitive = await asyncio.gather(
            self._present(target_url, PUBLIC_FILES),
            self._present(target_url, SENSITIVE_FILES),
        )
        if sensitive:
            logger.info(f"Sensitive files exposed on {target_url}: {', '.join(sensitive)}")
        return SensitiveFilesResult(found=bool(sensitive), files=sensitive, public_files=public)


def parse_robots(content: str) -> RobotsInfo:
    """Parse Disallow and Sitemap lines, flagging sensitive-looking paths."""
    disallowed, sitemaps, sensitive = [], [], []

    for line in content.splitlines():
        stripped = line.strip()
        lowered = stripped.lower()

        if lowered.startswith('disallow:'):
            path = stripped[len('disallow:'):].strip()
            if path:
                disallowed.append(path)
                if any(p.search(path) for p in SENSITIVE_ROBOTS_PATTERNS):
                    sensitive.append(path)
        elif lowered.startswith('sitemap:'):
            sitemaps.append(stripped[len('sitemap:'):].strip())

    return RobotsInfo(
        exists=True,
        disallowed_paths=disallowed,
        sitemaps=sitemaps,
        exposed_sensitive_paths=sensitive,
    )


class RobotsProbe:
    """Fetch and parse /robots.txt. Purely informational."""

    def __init__(self, session: aiohttp.ClientSession, timeout: float = 10.0):
        self.session = session
        self.timeout = timeout

    async def probe(self, target_url: str) -> RobotsInfo:
        try:
            async with self.session.get(
                with_path(target_url, '/robots.txt'),
                headers=BROWSER_HEADERS,
                allow_redirects=False,
                ssl=False,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status != 200:
                    return RobotsInfo(exists=False)
                return parse_robots(await read_capped(resp, ROBOTS_BODY_LIMIT))
        except (asyncio.TimeoutError, aiohttp.ClientError, OSError, ValueError, LookupError) as e:
            logger.debug(f"robots.txt fetch failed for {target_url}: {e}")
            return RobotsInfo(exists=False)
