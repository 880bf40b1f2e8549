import argparse
import json
import sys
from datetime import date

from db.database import SessionLocal, create_tables
from email_integration.notification_sender import NotificationDispatcher
from erp.errors import ReconciliationError
from logging_setup import setup_logging
from orchestration.reconciliation import run_reconciliation
from scheduling.business_calendar import default_calendar


def main(argv=None) -> int:
    """
    Entry point for the external scheduler (cron, systemd timer, ...).
    Prints the run summary as JSON; exits with 1 when the run was aborted.
    """
    parser = argparse.ArgumentParser(description="Reschedule missed purchase-order deliveries to the next business day.")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Run as if today were this date (YYYY-MM-DD). Defaults to today in BUSINESS_TIMEZONE.")
    args = parser.parse_args(argv)

    logger = setup_logging("deliveries")
    create_tables()

    db = SessionLocal()
    try:
        result = run_reconciliation(
            db,
            calendar=default_calendar(),
            dispatcher=NotificationDispatcher(logger=logger),
            today=args.date,
            logger=logger,
        )
    except ReconciliationError as e:
        logger.error("Reconciliation run aborted: %s", e)
        return 1
    finally:
        db.close()

    print(json.dumps(result.to_summary().model_dump(mode="json", by_alias=True), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
