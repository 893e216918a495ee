"""Run one abandonment sweep from the command line.

Meant for a scheduler that can run commands (cron, a Kubernetes CronJob)
instead of calling POST /maintenance/abandonment-sweep.

Usage:
    python src/sweep.py
    python src/sweep.py --max-emails 10
"""

import argparse
import json
import sys
from dataclasses import replace


def main(argv=None):
    parser = argparse.ArgumentParser(description="Altershop abandonment sweep")
    parser.add_argument(
        "--max-emails",
        type=int,
        help="Cap on reminder emails for this run (default: MAX_EMAILS_PER_RUN)",
    )
    args = parser.parse_args(argv)

    from ordering.domain import ordering
    from ordering.recovery.schedule import SweepLimits
    from ordering.recovery.sweep import run_abandonment_sweep

    ordering.init()

    limits = SweepLimits.from_settings()
    if args.max_emails is not None:
        limits = replace(limits, max_notifications=args.max_emails)

    with ordering.domain_context():
        report = run_abandonment_sweep(limits=limits)

    print(json.dumps(report.as_dict(), indent=2))
    return 1 if report.failures else 0


if __name__ == "__main__":
    sys.exit(main())
