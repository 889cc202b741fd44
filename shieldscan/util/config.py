"""Scanner configuration.

Loads all settings from the environment (and .env if present) with sensible
defaults. Nothing is required - a bare environment gives a working scanner.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration for a scanner process.

    Single source of truth for timeouts, concurrency and scoring policy.
    """

    def __init__(self, env_file: Optional[Path] = None):
        """Load configuration from .env file and the process environment."""
        if env_file is None:
            env_file = Path.cwd() / ".env"

        if env_file.exists():
            load_dotenv(env_file)

        # ===== NETWORK SETTINGS (seconds) =====
        self.dns_timeout = float(os.getenv("DNS_TIMEOUT", "5.0"))
        self.tls_timeout = float(os.getenv("TLS_TIMEOUT", "10.0"))
        self.http_timeout = float(os.getenv("HTTP_TIMEOUT", "20.0"))
        self.probe_timeout = float(os.getenv("PROBE_TIMEOUT", "15.0"))

        # Whole-scan budget enforced by the runner
        self.scan_timeout = float(os.getenv("SCAN_TIMEOUT", "90.0"))

        # ===== PARALLEL EXECUTION =====
        # Caps concurrent requests fired at the target by one scan
        self.max_workers = int(os.getenv("MAX_WORKERS", "6"))
        self.rate_limit_delay = float(os.getenv("RATE_LIMIT_DELAY", "0.0"))

        # ===== SCORING POLICY =====
        # Treat missing DNSSEC/CAA as real compliance gaps instead of context
        self.strict_dns_compliance = _env_bool("STRICT_DNS_COMPLIANCE")

        # ===== LOGGING =====
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    def to_dict(self) -> dict:
        """Convert config to dict for serialization."""
        return {
            'dns_timeout': self.dns_timeout,
            'tls_timeout': self.tls_timeout,
            'http_timeout': self.http_timeout,
            'probe_timeout': self.probe_timeout,
            'scan_timeout': self.scan_timeout,
            'max_workers': self.max_workers,
            'rate_limit_delay': self.rate_limit_delay,
            'strict_dns_compliance': self.strict_dns_compliance,
            'log_level': self.log_level,
        }

    def __repr__(self) -> str:
        """Human-readable config summary."""
        return (
            f"Config(\n"
            f"  timeouts=dns:{self.dns_timeout}s tls:{self.tls_timeout}s "
            f"http:{self.http_timeout}s probe:{self.probe_timeout}s\n"
            f"  scan_timeout={self.scan_timeout}s\n"
            f"  max_workers={self.max_workers}\n"
            f"  strict_dns_compliance={self.strict_dns_compliance}\n"
            f")"
        )
