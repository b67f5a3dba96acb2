"""
Command-line entry point.

  esptunes sync request.json [--device PATH] [--dry-run] [-v]
  esptunes verify /media/sdcard [-v]

sync writes one JSON event per line to stdout. Logs go to stderr.
"""

import argparse
import json
import logging
import sys
from typing import Optional

from .errors import SyncError
from .events import SyncEvent, fatal_error_line
from .integrity import check_integrity
from .library import parse_sync_request
from .settings import get_settings
from .staging import sweep_stale_staging
from .sync_executor import SyncExecutor

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _write_event(event: SyncEvent) -> None:
    sys.stdout.write(event.to_json_line())
    sys.stdout.flush()


def cmd_sync(args: argparse.Namespace) -> int:
    try:
        with open(args.request, "r", encoding="utf-8") as f:
            data = json.load(f)
        layout, device_root = parse_sync_request(data)
    except (OSError, json.JSONDecodeError, ValueError) as e:
        sys.stdout.write(fatal_error_line(f"Invalid sync request: {e}"))
        return 1

    device_root = args.device or device_root
    if not device_root:
        sys.stdout.write(fatal_error_line("No device root given"))
        return 1

    settings = get_settings()
    sweep_stale_staging(settings.staging_dir or None, settings.stale_staging_max_age)

    executor = SyncExecutor(device_root, settings=settings)
    try:
        if args.dry_run:
            plan = executor.plan(layout)
            sys.stdout.write(json.dumps({
                "type": "plan",
                "toDelete": sorted(plan.to_delete),
                "toCreate": [e.relative_path for e in plan.to_create],
                "toKeep": plan.to_keep,
            }, ensure_ascii=False) + "\n")
            return 0
        result = executor.execute(layout, event_callback=_write_event)
    except (SyncError, OSError) as e:
        sys.stdout.write(fatal_error_line(str(e)))
        return 1

    logger.info(result.summary)
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    report = check_integrity(args.device)
    sys.stdout.write(json.dumps(report.to_dict(), indent=2, ensure_ascii=False) + "\n")
    return 0 if report.is_clean else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="esptunes",
        description="Sync a virtual music library to an ESP32 playback card.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Sync a desired layout onto a device")
    sync.add_argument("request", help="Path to a sync request JSON file")
    sync.add_argument("--device", help="Device root (overrides deviceRoot in the request)")
    sync.add_argument("--dry-run", action="store_true", help="Show the plan without changing the device")
    sync.add_argument("-v", "--verbose", action="store_true")
    sync.set_defaults(func=cmd_sync)

    verify = sub.add_parser("verify", help="Check index.json against the files on a device")
    verify.add_argument("device", help="Device root")
    verify.add_argument("-v", "--verbose", action="store_true")
    verify.set_defaults(func=cmd_verify)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
