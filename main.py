import argparse
import json
import logging
import sys

from inventory_recon import settings
from inventory_recon.engine import ReconciliationEngine
from inventory_recon.errors import ReconciliationError
from inventory_recon.logger import setup_logger
from inventory_recon.notifications import EmailNotifier, Notifier, WebhookNotifier
from inventory_recon.sources.brightpearl import BrightpearlSource
from inventory_recon.sources.infoplus import InfoplusSource
from inventory_recon.store import JsonReportStore, export_csv

logger = logging.getLogger(__name__)


def build_notifier() -> tuple[Notifier | None, list[str]]:
    """Email when SMTP is configured, otherwise the webhook, otherwise nothing."""
    email = EmailNotifier()
    if email.configured and settings.EMAIL_RECIPIENTS:
        return email, settings.EMAIL_RECIPIENTS
    if settings.WEBHOOK_URL:
        return WebhookNotifier(), [settings.WEBHOOK_URL]
    return None, []


def build_engine() -> ReconciliationEngine:
    notifier, recipients = build_notifier()
    return ReconciliationEngine(
        source_a=BrightpearlSource(),
        source_b=InfoplusSource(),
        store=JsonReportStore(),
        notifier=notifier,
        recipients=recipients,
    )


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def run(args) -> int:
    engine = build_engine()
    try:
        report = engine.run_comparison()
    except ReconciliationError as e:
        logger.error(f"❌ Comparison failed: {e}")
        return 1
    if args.json_output:
        _print_json(engine.summarize(report).model_dump(mode="json", by_alias=True))
    return 0


def check_connections(args) -> int:
    engine = build_engine()
    results = {name: engine.test_source_connection(name) for name in engine.sources}
    for name, status in results.items():
        icon = "✅" if status.success else "❌"
        logger.info(f"{icon} {name}: {status.message}")
    return 0 if all(status.success for status in results.values()) else 1


def status(args) -> int:
    _print_json(settings.config_status())
    return 0


def latest(args) -> int:
    report = JsonReportStore().get_latest()
    if report is None:
        logger.info("No reports yet.")
        return 0
    _print_json(report.model_dump(mode="json", by_alias=True))
    return 0


def history(args) -> int:
    for report in JsonReportStore().list_recent(limit=args.limit):
        logger.info(
            f"{report.id}  {report.created_at.isoformat()}  "
            f"{report.total_discrepancies} discrepancies"
        )
    return 0


def delete(args) -> int:
    if JsonReportStore().delete(args.report_id):
        return 0
    logger.error(f"❌ Report {args.report_id} not found.")
    return 1


def export(args) -> int:
    store = JsonReportStore()
    report = store.get(args.report_id) if args.report_id else store.get_latest()
    if report is None:
        logger.error("❌ No report to export.")
        return 1
    export_csv(report)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Brightpearl / Infoplus inventory comparison")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a comparison and save the report.")
    run_parser.add_argument("--json-output", action="store_true", help="Print the run summary as JSON.")
    run_parser.set_defaults(func=run)

    subparsers.add_parser("test", help="Check both source connections.").set_defaults(func=check_connections)
    subparsers.add_parser("status", help="Show which integrations are configured.").set_defaults(func=status)
    subparsers.add_parser("latest", help="Print the latest report.").set_defaults(func=latest)

    history_parser = subparsers.add_parser("history", help="List recent reports.")
    history_parser.add_argument("--limit", type=int, default=30)
    history_parser.set_defaults(func=history)

    delete_parser = subparsers.add_parser("delete", help="Delete a report.")
    delete_parser.add_argument("report_id")
    delete_parser.set_defaults(func=delete)

    export_parser = subparsers.add_parser("export", help="Export a report's discrepancies to CSV.")
    export_parser.add_argument("report_id", nargs="?", help="Defaults to the latest report.")
    export_parser.set_defaults(func=export)

    args = parser.parse_args(argv)
    setup_logger()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
