"""Command line entry point.

    shieldscan example.com --plan pro --output reports/

Writes the scan outcome as JSON to stdout, or to --output. Exit codes:
0 success, 2 rejected input, 1 any other failure.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from urllib.parse import urlparse

from shieldscan.util.config import Config
from shieldscan.util.io import dumps_json, write_json
from shieldscan.util.log import setup_logging
from shieldscan.util.time import timestamp_str
from shieldscan.util.types import AuthConfig, PlanTier, ScanRequest
from shieldscan.scanner.service import ScanService

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INPUT_ERROR = 2


def parse_header(value: str):
    """argparse type for `Name: value` pairs."""
    name, sep, content = value.partition(':')
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected 'Name: value', got {value!r}")
    return name.strip(), content.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='shieldscan',
        description='Safe, non-destructive security assessment of a single web origin',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shieldscan example.com
  shieldscan https://example.com --plan business
  shieldscan example.com --header "Authorization: Bearer TOKEN" --output reports/
        """
    )
    parser.add_argument('url', help='Target URL or hostname (https:// is assumed)')
    parser.add_argument('--plan', default='free', choices=[p.value for p in PlanTier],
                        help='Plan tier that decides which checks run (default: free)')
    parser.add_argument('--admin', action='store_true',
                        help='Run with admin entitlement (all business checks)')
    parser.add_argument('--header', action='append', type=parse_header, default=[],
                        metavar='NAME:VALUE', help='Extra request header (repeatable)')
    parser.add_argument('--cookie', default=None, help='Cookie header to send with every fetch')
    parser.add_argument('--output', '-o', default=None,
                        help='Write JSON to this file, or into this directory with a timestamped name')
    parser.add_argument('--log-file', default=None, help='Also write logs to this file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser


def output_path(output: str, url: str) -> Path:
    path = Path(output)
    if path.is_dir() or output.endswith(('/', '\\')):
        host = urlparse(url if '://' in url else f"https://{url}").hostname or 'target'
        return path / f"scan_{host}_{timestamp_str()}.json"
    return path


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    config = Config()
    setup_logging(
        log_file=Path(args.log_file) if args.log_file else None,
        level=logging.DEBUG if args.verbose else config.log_level,
    )

    auth = None
    if args.header or args.cookie:
        auth = AuthConfig(headers=dict(args.header), cookie_header=args.cookie, profile_name='cli')

    request = ScanRequest(url=args.url, plan=args.plan, is_admin_override=args.admin, auth=auth)

    try:
        outcome = asyncio.run(ScanService(config=config).run(request))
    except KeyboardInterrupt:
        print("\n✗ Scan interrupted by user", file=sys.stderr)
        return 130

    data = outcome.to_dict()
    if args.output:
        path = output_path(args.output, args.url)
        write_json(path, data)
        if outcome.success:
            result = outcome.result
            print(f"✓ Scan complete for {result.url}")
            print(f"  Score: {result.score} ({result.grade})")
            print(f"  Checks: {result.summary.total} "
                  f"({result.summary.failed} failed, {result.summary.warnings} warnings)")
            print(f"  Output: {path}")
        else:
            print(f"✗ Scan failed: {outcome.error}")
    else:
        print(dumps_json(data))

    if outcome.success:
        return EXIT_OK
    if outcome.status_code == 400:
        return EXIT_INPUT_ERROR
    return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
