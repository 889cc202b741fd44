"""
Unit Tests for Target Validation
"""

import pytest

from shieldscan.util.errors import BlockedTargetError, InvalidTargetError, ScanInputError
from shieldscan.scanner.validation import (
    check_resolved_addresses, normalize_url, parse_ip_host, validate_target,
)


class TestNormalizeUrl:

    def test_adds_https_and_lowercases(self):
        assert normalize_url('  Example.COM/Path ') == 'https://example.com/path'

    def test_keeps_http(self):
        assert normalize_url('http://example.com') == 'http://example.com'

    def test_missing(self):
        with pytest.raises(InvalidTargetError):
            normalize_url('   ')

    def test_too_long(self):
        with pytest.raises(InvalidTargetError, match='too long'):
            normalize_url('https://example.com/' + 'a' * 2048)

    def test_bad_port(self):
        with pytest.raises(InvalidTargetError):
            normalize_url('https://example.com:99999/')


class TestValidateTarget:
    """Internal addresses are refused before any network call"""

    @pytest.mark.parametrize('url', [
        'localhost',
        'http://localhost:8080',
        '127.0.0.1',
        'https://10.1.2.3/',
        '172.16.0.1',
        '172.31.255.255',
        '192.168.1.1',
        '0.0.0.0',
        'http://[::1]/',
        '169.254.169.254',
        'http://[fe80::1]/',
        'http://2130706433',
        'http://127.1/',
        'http://0x7f.0.0.1',
        'http://0xa000001',
    ])
    def test_blocked(self, url):
        with pytest.raises(BlockedTargetError) as exc:
            validate_target(url)
        assert exc.value.status_code == 400
        assert str(exc.value) == 'Cannot scan internal or private addresses'

    @pytest.mark.parametrize('url', ['example.com', '172.32.0.1', 'https://8.8.8.8'])
    def test_allowed(self, url):
        assert validate_target(url).startswith(('https://', 'http://'))

    def test_input_errors_share_base(self):
        with pytest.raises(ScanInputError):
            validate_target('')


class TestResolvedAddresses:

    def test_public_addresses_pass(self):
        check_resolved_addresses('example.com', ['93.184.216.34', '2606:2800:220:1::'])

    @pytest.mark.parametrize('address', ['127.0.0.1', '10.0.0.7', '169.254.169.254', '::1', 'fe80::1', '0.0.0.0'])
    def test_internal_answer_blocked(self, address):
        with pytest.raises(BlockedTargetError):
            check_resolved_addresses('localtest.me', ['93.184.216.34', address])


def test_parse_ip_host():
    assert str(parse_ip_host('2130706433')) == '127.0.0.1'
    assert str(parse_ip_host('127.1')) == '127.0.0.1'
    assert parse_ip_host('example.com') is None
