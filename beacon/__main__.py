"""Beacon command-line entry point.

Usage::

    python -m beacon collect [--data-dir PATH] [--docs-dir PATH]
    python -m beacon probe [--force]
    python -m beacon serve [--host HOST] [--port PORT]

Defaults come from the environment (``BEACON_DATA_DIR``,
``PROBE_MAX_CONCURRENCY``, ``PROBE_TIMEOUT_MS``, ``PROBE_MAX_AGE_DAYS``,
``ALCHEMY_API_KEY`` …).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from beacon.config import MonitorConfig
from beacon.monitor import Monitor, RunReport
from beacon.validation import ValidationError

logger = logging.getLogger("beacon")


def _config_from_args(args: argparse.Namespace) -> MonitorConfig:
    return MonitorConfig.from_env().with_overrides(
        data_dir=Path(args.data_dir) if args.data_dir else None,
        docs_dir=Path(args.docs_dir) if args.docs_dir else None,
        probe_max_concurrency=args.max_concurrency,
        probe_timeout_ms=args.timeout_ms,
        probe_max_age_days=args.max_age_days,
        alchemy_url=args.alchemy_url,
    )


def _print_report(title: str, report: RunReport) -> None:
    print(title)
    print("=" * len(title))
    print()
    for line in report.log:
        print(line)
    print()
    print(f"Summary: {report.summary()}")


def cmd_collect(args: argparse.Namespace) -> int:
    report = asyncio.run(Monitor(_config_from_args(args)).run())
    _print_report("Beacon - Collection Run", report)
    return 0 if report.status else 1


def cmd_probe(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    force = True if args.force else None
    report = asyncio.run(Monitor(config).reprobe(force=force))
    _print_report("Beacon - Probe Endpoints", report)
    return 0 if report.status else 1


def cmd_serve(args: argparse.Namespace) -> int:
    from beacon.server import main as serve

    config = _config_from_args(args).with_overrides(host=args.host, port=args.port)
    config.validate()
    serve(config)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m beacon",
        description="Beacon endpoint registry and verification pipeline",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def _common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--data-dir", metavar="PATH", default=None,
                       help="Data directory (default: BEACON_DATA_DIR or ./data)")
        p.add_argument("--docs-dir", metavar="PATH", default=None,
                       help="Dashboard output directory (default: <data>/../docs)")
        p.add_argument("--max-concurrency", type=int, default=None)
        p.add_argument("--timeout-ms", type=int, default=None)
        p.add_argument("--max-age-days", type=float, default=None)
        p.add_argument("--alchemy-url", metavar="URL", default=None,
                       help="Ethereum JSON-RPC URL for ERC-8004 logs (default: ALCHEMY_URL / ALCHEMY_API_KEY)")

    s = sub.add_parser("collect", help="Collect, merge, probe and persist")
    _common(s)
    s.set_defaults(func=cmd_collect)

    s = sub.add_parser("probe", help="Re-probe stale endpoints of the stored catalog")
    _common(s)
    s.add_argument("--force", action="store_true", help="Re-probe every endpoint")
    s.set_defaults(func=cmd_probe)

    s = sub.add_parser("serve", help="Serve the read-only catalog API")
    _common(s)
    s.add_argument("--host", default=None)
    s.add_argument("--port", type=int, default=None)
    s.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    except OSError as exc:
        logger.exception("persistence failed")
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n\nRun cancelled.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
