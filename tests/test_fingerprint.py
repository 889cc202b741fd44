"""
Unit Tests for Fingerprinting
"""

from shieldscan.scanner.fingerprint import (
    analyze_third_party_scripts, check_javascript_security, check_mixed_content,
    detect_cdn, detect_technologies, detect_waf, header_technology_hints,
)


class TestCDNAndWAF:

    def test_cdn_from_ns(self):
        assert detect_cdn(['ns-1.awsdns-00.com', 'd1.cloudfront.net'], 'example.com') == 'AWS CloudFront'

    def test_cdn_from_hostname(self):
        assert detect_cdn([], 'site.netlify.app') == 'Netlify'

    def test_first_provider_wins(self):
        assert detect_cdn(['ns.cloudflare.com', 'ns.fastly.net'], 'example.com') == 'Cloudflare'

    def test_no_cdn(self):
        assert detect_cdn(['ns1.example.net'], 'example.com') is None

    def test_waf_signature(self):
        assert detect_waf({'server': 'cloudflare', 'cf-ray': '8a1b'}) == 'Cloudflare'

    def test_generic_waf_header(self):
        assert detect_waf({'x-waf-status': 'ok'}) == 'Generic WAF'

    def test_no_waf(self):
        assert detect_waf({'content-type': 'text/html'}) is None


class TestTechnologies:

    def test_version_raises_confidence(self):
        techs = {t.name: t for t in detect_technologies('<script src="/js/jquery-3.7.1.min.js"></script>', {})}
        assert techs['jQuery'].version == '3.7.1'
        assert techs['jQuery'].confidence == 90
        assert techs['jQuery'].category == 'Library'

    def test_without_version(self):
        techs = {t.name: t for t in detect_technologies('<link href="/wp-content/themes/x.css">', {})}
        assert techs['WordPress'].version is None
        assert techs['WordPress'].confidence == 70
        assert techs['WordPress'].category == 'CMS'

    def test_header_hints(self):
        assert header_technology_hints({'server': 'nginx', 'x-powered-by': 'Express'}) == ['Node.js', 'Nginx']


class TestPageAnalysis:

    def test_mixed_content_unique_urls(self):
        page = '<img src="http://a.com/x.png"><img src="http://a.com/x.png"><div style="background:url(http://b.com/y.jpg)">'
        mixed = check_mixed_content(page)
        assert mixed.count == 2
        assert mixed.examples == ['http://a.com/x.png', 'http://b.com/y.jpg']

    def test_javascript_security(self):
        js = check_javascript_security('<script src="/lodash-4.17.15.js"></script><script>new Function("x")</script>')
        assert js.vulnerable_libraries == ['Lodash < 4.17.21']
        assert js.has_inline_scripts is True
        assert js.has_eval is True

    def test_clean_javascript(self):
        js = check_javascript_security('<script src="/app.js"></script>')
        assert js.vulnerable_libraries == []
        assert js.has_inline_scripts is False
        assert js.has_eval is False

    def test_third_party_scripts(self):
        page = """
        <script src="https://example.com/own.js"></script>
        <script src="https://unpkg.com/lib@1/dist/lib.js"></script>
        <script src="https://www.googletagmanager.com/gtm.js?id=GTM-1"></script>
        <script src="/relative.js"></script>
        <script>inline()</script>
        """
        result = analyze_third_party_scripts(page, 'example.com')
        assert result.domains == ['unpkg.com', 'www.googletagmanager.com']
        assert len(result.scripts) == 2
        assert result.high_risk_count == 1
