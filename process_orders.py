#!/usr/bin/env python3
"""Main entry point for Shopify order tax processing.

Usage:
    python process_orders.py --import            # Import recent orders from Shopify
    python process_orders.py --file order.json   # Process orders from a JSON file
    python process_orders.py --totals            # Show tax to set aside per category
    python process_orders.py --mismatches        # List orders needing review
    python process_orders.py --stats             # Show database statistics
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError
from pythonjsonlogger import jsonlogger

from taxflow.config import get_settings, Settings
from taxflow.constants import CATEGORY_LABELS
from taxflow.database import Database
from taxflow.import_engine import ImportResult, TaxImportEngine, load_orders
from taxflow.shopify_client import ShopifyClient, ShopifyAPIError
from taxflow.tax_processor import format_currency, format_tax_breakdown_summary


def setup_logging(settings: Settings) -> None:
    """Configure logging for the application.

    Args:
        settings: Application settings
    """
    # Ensure log directory exists
    settings.log_file.parent.mkdir(parents=True, exist_ok=True)

    # Create formatters
    console_formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    json_formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(logging.DEBUG)

    # File handler (JSON format for parsing)
    file_handler = logging.FileHandler(settings.log_file)
    file_handler.setFormatter(json_formatter)
    file_handler.setLevel(logging.DEBUG)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # Reduce noise from httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def report_result(result: ImportResult) -> int:
    """Log an import result and return the exit code."""
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("Processing Complete")
    logger.info("=" * 60)
    logger.info(f"  Created: {result.created}")
    logger.info(f"  Updated: {result.updated}")
    logger.info(f"  Skipped: {result.skipped}")
    logger.info(f"  Need review: {result.mismatched}")
    logger.info(f"  Errors: {len(result.errors)}")

    if result.errors:
        logger.warning("Errors encountered:")
        for error in result.errors[:10]:  # Show first 10 errors
            logger.warning(f"  - {error}")
        if len(result.errors) > 10:
            logger.warning(f"  ... and {len(result.errors) - 10} more")
        return 1

    return 0 if result.success else 1


def show_totals(database: Database) -> None:
    """Log the tax to set aside, per currency and category."""
    logger = logging.getLogger(__name__)

    totals = database.get_category_totals()
    if not totals:
        logger.info("No tax records stored yet")
        return

    for currency, categories in sorted(totals.items()):
        total = sum(categories.values())
        logger.info(f"Tax to set aside ({currency}): {format_currency(total, currency)}")
        for category, amount in categories.items():
            if amount > 0:
                logger.info(f"  {CATEGORY_LABELS[category]}: {format_currency(amount, currency)}")


def show_mismatches(database: Database) -> None:
    """Log orders whose breakdown didn't reconcile."""
    logger = logging.getLogger(__name__)

    records = database.get_mismatched_records()
    logger.info(f"{len(records)} orders need review")
    for record in records:
        logger.info(
            f"  {record.order_name}: categorised "
            f"{format_currency(record.validation.calculated_total_cents, record.currency)}, "
            f"reported {format_currency(record.total_tax_cents, record.currency)} "
            f"(difference {record.validation.difference_cents} cents) - "
            f"{format_tax_breakdown_summary(record.breakdown, record.currency)}"
        )


def process_file(engine: TaxImportEngine, path: Path, force: bool = False) -> ImportResult:
    """Process the orders in a JSON file."""
    with open(path, encoding="utf-8") as f:
        document = json.load(f)
    return engine.process_orders(load_orders(document), force=force)


async def run(args: argparse.Namespace) -> int:
    """Run the requested operation.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    logger = logging.getLogger(__name__)

    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error(f"Failed to load settings: {e}")
        logger.error("Check the .env file and environment variables")
        return 1

    setup_logging(settings)

    if args.dry_run:
        logger.info("DRY RUN MODE ENABLED - No records will be stored")
        settings.dry_run = True

    database = Database(settings.database_path)

    if args.stats:
        stats = database.get_stats()
        logger.info("Tax Record Statistics:")
        logger.info(f"  Orders: {stats.get('orders', 0)}")
        logger.info(f"  Need review: {stats.get('mismatched_orders', 0)}")
        logger.info(f"  Last successful import: {stats.get('last_successful_import') or 'Never'}")
        return 0

    if args.totals:
        show_totals(database)
        return 0

    if args.mismatches:
        show_mismatches(database)
        return 0

    if args.file:
        engine = TaxImportEngine(settings=settings, database=database, dry_run=args.dry_run)
        try:
            result = process_file(engine, args.file, force=args.force)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Cannot read orders from {args.file}: {e}")
            return 1
        return report_result(result)

    if args.do_import:
        try:
            async with ShopifyClient(settings) as shopify_client:
                engine = TaxImportEngine(
                    settings=settings,
                    database=database,
                    shopify_client=shopify_client,
                    dry_run=args.dry_run,
                )

                logger.info("Verifying Shopify connection...")
                if not await engine.verify_connection():
                    logger.error("Cannot connect to Shopify API")
                    return 1

                result = await engine.run_historical_import(
                    days_back=args.days_back,
                    max_orders=args.max_orders,
                    force=args.force,
                )
        except ShopifyAPIError as e:
            logger.error(str(e))
            return 1
        return report_result(result)

    logger.error("Nothing to do. Use --import, --file, --totals, --mismatches or --stats")
    return 1


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Classify Shopify order taxes and track how much to set aside",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python process_orders.py --import                 Import the last 90 days of orders
  python process_orders.py --import --days-back 30  Import the last 30 days
  python process_orders.py --file orders.json       Process orders from a JSON export
  python process_orders.py --totals                 Show tax to set aside
  python process_orders.py --mismatches             List orders needing review
        """,
    )

    parser.add_argument(
        "--import",
        dest="do_import",
        action="store_true",
        help="Import historical orders from the Shopify Admin API",
    )

    parser.add_argument(
        "--file",
        type=Path,
        help="Process orders from a JSON file (single order, webhook body or orders list)",
    )

    parser.add_argument(
        "--days-back",
        type=int,
        default=None,
        help="How many days of orders to import (default from settings)",
    )

    parser.add_argument(
        "--max-orders",
        type=int,
        default=None,
        help="Maximum number of orders to import (default from settings)",
    )

    parser.add_argument(
        "--force",
        action="store_true",
        help="Reprocess orders even if their tax data is unchanged",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Process orders without storing the results",
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show database statistics and exit",
    )

    parser.add_argument(
        "--totals",
        action="store_true",
        help="Show tax to set aside per category and exit",
    )

    parser.add_argument(
        "--mismatches",
        action="store_true",
        help="List orders whose tax breakdown didn't reconcile and exit",
    )

    args = parser.parse_args()

    # Run async main
    exit_code = asyncio.run(run(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
