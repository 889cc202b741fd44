"""
Unit Tests for Configuration
"""

from shieldscan.util.config import Config


def test_defaults(monkeypatch, tmp_path):
    for name in ('DNS_TIMEOUT', 'SCAN_TIMEOUT', 'MAX_WORKERS', 'STRICT_DNS_COMPLIANCE', 'LOG_LEVEL'):
        monkeypatch.delenv(name, raising=False)

    config = Config(env_file=tmp_path / 'missing.env')

    assert config.dns_timeout == 5.0
    assert config.scan_timeout == 90.0
    assert config.max_workers == 6
    assert config.strict_dns_compliance is False
    assert config.log_level == 'INFO'


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv('SCAN_TIMEOUT', '30')
    monkeypatch.setenv('STRICT_DNS_COMPLIANCE', 'yes')
    monkeypatch.setenv('LOG_LEVEL', 'debug')

    config = Config(env_file=tmp_path / 'missing.env')

    assert config.scan_timeout == 30.0
    assert config.strict_dns_compliance is True
    assert config.to_dict()['log_level'] == 'DEBUG'


def test_env_file_loaded(monkeypatch, tmp_path):
    monkeypatch.delenv('MAX_WORKERS', raising=False)
    env_file = tmp_path / '.env'
    env_file.write_text('MAX_WORKERS=2\n')

    config = Config(env_file=env_file)

    assert config.max_workers == 2
    monkeypatch.delenv('MAX_WORKERS', raising=False)
