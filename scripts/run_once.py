import argparse
import json
import sys

from inbox_digest.app.run import run_once
from inbox_digest.config.logging_utils import configure_logging
from inbox_digest.config.paths import LOGS_DIR, STATE_PATH
from inbox_digest.errors import ConfigError, RunFailedError
from inbox_digest.models import RunMode


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Classify the inbox once and build the digest report.")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in RunMode],
        default=None,
        help="preview (no mailbox changes), limited (capped batch) or full. Defaults to INBOX_DIGEST_MODE.",
    )
    parser.add_argument("--limit", type=int, default=None, help="Batch cap for limited mode.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    parser.add_argument("--json", action="store_true", help="Print the report payload as JSON.")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    log_path = configure_logging(LOGS_DIR, verbose=args.verbose)

    try:
        report = run_once(
            state_path=STATE_PATH,
            mode=RunMode(args.mode) if args.mode else None,
            batch_limit=args.limit,
        )
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except RunFailedError as exc:
        print(f"Run failed: {exc} (log: {log_path})", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report, indent=2, ensure_ascii=False))
    else:
        print(
            f"mode={report['mode']} processed={report['processed']} listed={report['listed']} "
            f"errors={len(report['errors'])} skipped_reports={report['skipped_reports']}"
        )
        for name, count in report["counters"].items():
            print(f"  {name}: {count}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
