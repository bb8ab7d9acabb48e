import argparse
from datetime import UTC, datetime

from bounce_report.completion import exit_process
from bounce_report.config import configure_logging, get_settings
from bounce_report.graceful import InterruptRun, shutdown_signals
from bounce_report.mailer import SmtpMailer
from bounce_report.runner import ReportJob
from bounce_report.scheduler import start_scheduler


def _parse_now(raw: str) -> datetime:
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Email deliverability log report")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="build and email one report")
    run_parser.add_argument("--now", type=_parse_now, help="Run time in ISO 8601 format (defaults to current UTC time)")
    run_parser.add_argument(
        "--strict-exit",
        action="store_true",
        help="exit 1 when the report itself was not sent",
    )

    schedule_parser = subparsers.add_parser("schedule", help="run the report on an interval")
    schedule_parser.add_argument("--run-now", action="store_true", help="also run once immediately")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    if args.command == "schedule":
        start_scheduler(settings, run_now=args.run_now)
        return

    clock = (lambda: args.now) if args.now else None
    job = ReportJob(settings, SmtpMailer(settings), clock=clock)
    with shutdown_signals(InterruptRun()):
        job.run(on_complete=exit_process(strict=args.strict_exit))


if __name__ == "__main__":
    main()
