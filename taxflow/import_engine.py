"""Order import orchestration.

Pulls orders from Shopify (historical import) or takes order payloads
handed over by the webhook layer, runs them through the tax processor,
and stores the resulting tax records with change detection.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from dataclasses import dataclass, field

from pydantic import ValidationError

from .config import Settings
from .database import Database
from .shopify_client import ShopifyClient, ShopifyAPIError
from .models import OrderTaxRecord, ShopifyOrder
from .checksums import calculate_order_tax_checksum, has_changed
from .tax_processor import process_order_taxes

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Result of an import operation."""
    success: bool
    created: int = 0
    updated: int = 0
    skipped: int = 0
    mismatched: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return self.created + self.updated + self.skipped


class TaxImportEngine:
    """Runs Shopify orders through the tax processor and stores the results."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        shopify_client: Optional[ShopifyClient] = None,
        dry_run: bool = False,
    ):
        """Initialize import engine.

        Args:
            settings: Application settings
            database: Database instance for tax records
            shopify_client: Shopify API client (only needed for historical imports)
            dry_run: If True, process orders without storing anything
        """
        self.settings = settings
        self.db = database
        self.shopify = shopify_client
        self.dry_run = dry_run or settings.dry_run

    # =========================================================================
    # SINGLE ORDERS
    # =========================================================================

    def process_order(self, order: ShopifyOrder, force: bool = False) -> tuple[str, OrderTaxRecord]:
        """Process one order and store its tax record.

        Args:
            order: Shopify order
            force: Reprocess even if the order's tax data is unchanged

        Returns:
            Tuple of (action, record) where action is created, updated or skipped
        """
        order_id = str(order.id)
        new_checksum = calculate_order_tax_checksum(
            order,
            default_currency=self.settings.default_currency,
            tolerance_cents=self.settings.validation_tolerance_cents,
        )
        old_checksum = self.db.get_checksum(order_id)

        if not force and not has_changed(old_checksum, new_checksum):
            logger.debug(f"Order {order_id} tax data unchanged, skipping")
            return ("skipped", self.db.get_record(order_id))

        record = process_order_taxes(
            order,
            default_currency=self.settings.default_currency,
            tolerance_cents=self.settings.validation_tolerance_cents,
        )
        record.checksum = new_checksum
        record.processed_at = datetime.utcnow()

        action = "created" if old_checksum is None else "updated"
        if self.dry_run:
            logger.info(f"[DRY RUN] Would store tax record for order {record.order_name}")
            return (action, record)

        # Mismatched breakdowns are stored too; they're flagged for review
        self.db.upsert_record(record)
        logger.info(f"Stored tax record for order {record.order_name} ({action})")
        return (action, record)

    def process_order_payload(self, payload: dict, force: bool = False) -> tuple[str, OrderTaxRecord]:
        """Process an order payload as delivered by an orders/* webhook.

        Signature verification happens before this is called.

        Args:
            payload: Order JSON as a dict
            force: Reprocess even if unchanged

        Returns:
            Tuple of (action, record)

        Raises:
            pydantic.ValidationError: If the payload isn't an order
        """
        order = ShopifyOrder.model_validate(payload)
        return self.process_order(order, force=force)

    def process_orders(self, orders: List[ShopifyOrder], force: bool = False) -> ImportResult:
        """Process a batch of orders, collecting failures instead of raising.

        Args:
            orders: Orders to process
            force: Reprocess even if unchanged

        Returns:
            ImportResult with counts
        """
        result = ImportResult(success=True)
        for order in orders:
            self._process_into_result(order, result, force)
        return result

    def _process_into_result(self, order: ShopifyOrder, result: ImportResult, force: bool) -> None:
        try:
            action, record = self.process_order(order, force=force)
        except Exception as e:
            error_msg = f"Order {order.id}: {str(e)}"
            logger.error(error_msg)
            result.errors.append(error_msg)
            return

        if action == "created":
            result.created += 1
        elif action == "updated":
            result.updated += 1
        else:
            result.skipped += 1
            return

        if record.needs_review:
            result.mismatched += 1

    # =========================================================================
    # HISTORICAL IMPORT
    # =========================================================================

    async def run_historical_import(
        self,
        days_back: Optional[int] = None,
        max_orders: Optional[int] = None,
        force: bool = False,
    ) -> ImportResult:
        """Import past orders from Shopify.

        Args:
            days_back: How many days of orders to import (default from settings)
            max_orders: Maximum orders to import (default from settings)
            force: Reprocess orders even if unchanged

        Returns:
            ImportResult with counts of created/updated/skipped/mismatched/errors
        """
        if self.shopify is None:
            raise ValueError("Historical import needs a Shopify client")

        days_back = days_back or self.settings.import_days_back
        max_orders = max_orders or self.settings.import_max_orders
        created_at_min = datetime.now(timezone.utc) - timedelta(days=days_back)

        run_id = str(uuid.uuid4())
        result = ImportResult(success=True)
        if not self.dry_run:
            self.db.start_import_run(run_id)

        logger.info(
            f"Starting historical import {run_id}: "
            f"{days_back} days back, up to {max_orders} orders"
        )

        try:
            async for order in self.shopify.fetch_all_orders(
                created_at_min=created_at_min,
                status="any",
                max_orders=max_orders,
            ):
                self._process_into_result(order, result, force)
        except ShopifyAPIError as e:
            logger.error(f"Failed to fetch orders: {e}")
            result.errors.append(f"Fetch failed: {str(e)}")
            result.success = False

        if not self.dry_run:
            self.db.complete_import_run(
                run_id,
                status="success" if result.success else "failed",
                orders_processed=result.total_processed,
                mismatches=result.mismatched,
                errors=result.errors,
            )

        logger.info(
            f"Historical import complete: "
            f"{result.created} created, {result.updated} updated, "
            f"{result.skipped} skipped, {result.mismatched} need review, "
            f"{len(result.errors)} errors"
        )
        return result

    async def verify_connection(self) -> bool:
        """Verify the Shopify connection used for historical imports."""
        if self.shopify is None:
            return False
        return await self.shopify.check_connection()


def load_orders(document) -> List[ShopifyOrder]:
    """Parse orders from a JSON document.

    Accepts a single order, an {"order": {...}} webhook body, an
    {"orders": [...]} API response, or a plain list of orders.
    Unparsable orders are logged and skipped.

    Args:
        document: Decoded JSON

    Returns:
        List of ShopifyOrder objects
    """
    if isinstance(document, dict) and "orders" in document:
        items = document["orders"]
        if not isinstance(items, list):
            logger.warning(f"Expected a list of orders, got {type(items).__name__}; nothing to process")
            items = []
    elif isinstance(document, dict) and "order" in document:
        items = [document["order"]]
    elif isinstance(document, list):
        items = document
    else:
        items = [document]

    orders = []
    for item in items:
        try:
            orders.append(ShopifyOrder.model_validate(item))
        except ValidationError as e:
            order_id = item.get("id") if isinstance(item, dict) else None
            logger.error(f"Failed to parse order {order_id}: {e}")
    return orders
