"""
Unit Tests for the Exposure Probes
"""

import asyncio

from aiohttp import web

from shieldscan.util.concurrency import ConcurrencyController
from shieldscan.scanner.probes.exposure_probe import RobotsProbe, SensitiveFileProbe, parse_robots

ROBOTS = """
User-agent: *
  Disallow: /wp-admin/
DISALLOW: /public/
Disallow:
Disallow: /staging-area
Sitemap: https://example.com/sitemap.xml
"""


async def ok(request):
    return web.Response(text='present')


class TestSensitiveFileProbe:
    """Test suite for well-known file existence checks"""

    def test_only_config_php_exposed(self, serve):
        """Public files are reported apart from sensitive ones"""
        app = web.Application()
        app.router.add_get('/config.php', ok)
        app.router.add_get('/robots.txt', ok)

        async def run(session, url):
            probe = SensitiveFileProbe(session, ConcurrencyController(max_workers=2), timeout=5)
            return await probe.probe(url)

        result = asyncio.run(serve(app, run))

        assert result.found is True
        assert result.files == ['/config.php']
        assert result.public_files == ['/robots.txt']

    def test_nothing_exposed(self, serve):
        async def forbidden(request):
            return web.Response(status=403)

        app = web.Application()
        app.router.add_get('/.env', forbidden)

        result = asyncio.run(serve(app, lambda session, url: SensitiveFileProbe(session, timeout=5).probe(url)))

        assert result.found is False
        assert result.files == []


class TestRobots:

    def test_parse_robots(self):
        info = parse_robots(ROBOTS)

        assert info.exists is True
        assert info.disallowed_paths == ['/wp-admin/', '/public/', '/staging-area']
        assert info.exposed_sensitive_paths == ['/wp-admin/', '/staging-area']
        assert info.sitemaps == ['https://example.com/sitemap.xml']

    def test_robots_probe(self, serve):
        async def robots(request):
            return web.Response(text=ROBOTS)

        app = web.Application()
        app.router.add_get('/robots.txt', robots)

        info = asyncio.run(serve(app, lambda session, url: RobotsProbe(session, timeout=5).probe(url)))

        assert info.exists is True
        assert len(info.disallowed_paths) == 3

    def test_missing_robots(self, serve):
        info = asyncio.run(serve(web.Application(), lambda session, url: RobotsProbe(session, timeout=5).probe(url)))
        assert info.exists is False

    def test_robots_streamed_in_chunks(self, serve):
        """Lines after the first chunk are still parsed"""
        async def robots(request):
            resp = web.StreamResponse(headers={'Content-Type': 'text/plain'})
            await resp.prepare(request)
            await resp.write(b'User-agent: *\nDisallow: /public\n')
            await asyncio.sleep(0.05)
            await resp.write(b'Disallow: /admin\nSitemap: https://example.com/sitemap.xml\n')
            await resp.write_eof()
            return resp

        app = web.Application()
        app.router.add_get('/robots.txt', robots)

        info = asyncio.run(serve(app, lambda session, url: RobotsProbe(session, timeout=5).probe(url)))

        assert info.disallowed_paths == ['/public', '/admin']
        assert info.exposed_sensitive_paths == ['/admin']
        assert info.sitemaps == ['https://example.com/sitemap.xml']

    def test_unknown_charset(self, serve):
        async def robots(request):
            return web.Response(body=b'Disallow: /backup\n',
                                headers={'Content-Type': 'text/plain; charset=bogus-enc'})

        app = web.Application()
        app.router.add_get('/robots.txt', robots)

        info = asyncio.run(serve(app, lambda session, url: RobotsProbe(session, timeout=5).probe(url)))

        assert info.exists is True
        assert info.disallowed_paths == ['/backup']
