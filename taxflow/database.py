"""SQLite database operations for processed order tax data.

The database is a disposable cache - it can be rebuilt by re-importing
orders from Shopify. It stores one tax record per order, with checksums
for change detection, plus the history of import runs.
"""

import sqlite3
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List
from contextlib import contextmanager

from .constants import TaxCategory, CATEGORY_AMOUNT_FIELDS
from .models import (
    ImportHistoryEntry,
    Jurisdiction,
    OrderTaxRecord,
    TaxBreakdown,
    TaxLineDetail,
    ValidationResult,
)

logger = logging.getLogger(__name__)


def _utc_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Fixed-width UTC ISO string, so SQL string comparison orders by instant.

    Naive datetimes are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class Database:
    """SQLite database manager for order tax records."""

    SCHEMA = """
    -- One row per Shopify order, tax amounts in minor units
    CREATE TABLE IF NOT EXISTS order_tax_records (
        order_id TEXT PRIMARY KEY,
        order_name TEXT,
        currency TEXT NOT NULL,
        total_tax_cents INTEGER NOT NULL DEFAULT 0,
        gst_amount INTEGER NOT NULL DEFAULT 0,
        pst_amount INTEGER NOT NULL DEFAULT 0,
        hst_amount INTEGER NOT NULL DEFAULT 0,
        qst_amount INTEGER NOT NULL DEFAULT 0,
        state_tax_amount INTEGER NOT NULL DEFAULT 0,
        local_tax_amount INTEGER NOT NULL DEFAULT 0,
        other_tax_amount INTEGER NOT NULL DEFAULT 0,
        tax_country TEXT,
        tax_province TEXT,
        tax_city TEXT,
        tax_postal_code TEXT,
        tax_breakdown TEXT NOT NULL DEFAULT '[]',
        is_valid INTEGER NOT NULL DEFAULT 1,
        calculated_total_cents INTEGER NOT NULL DEFAULT 0,
        difference_cents INTEGER NOT NULL DEFAULT 0,
        checksum TEXT,
        customer_email TEXT,
        order_created_at TIMESTAMP,
        processed_at TIMESTAMP
    );

    -- Index for finding orders that need manual review
    CREATE INDEX IF NOT EXISTS idx_records_is_valid
    ON order_tax_records(is_valid);

    -- Index for set-aside totals over a date range
    CREATE INDEX IF NOT EXISTS idx_records_created_at
    ON order_tax_records(order_created_at);

    -- Track import run history for auditing
    CREATE TABLE IF NOT EXISTS import_history (
        run_id TEXT PRIMARY KEY,
        started_at TIMESTAMP NOT NULL,
        completed_at TIMESTAMP,
        status TEXT NOT NULL,
        orders_processed INTEGER DEFAULT 0,
        mismatches INTEGER DEFAULT 0,
        errors TEXT
    );

    -- Index for efficient history queries
    CREATE INDEX IF NOT EXISTS idx_history_started_at
    ON import_history(started_at DESC);
    """

    AMOUNT_COLUMNS = [CATEGORY_AMOUNT_FIELDS[category] for category in TaxCategory]

    def __init__(self, db_path: Path):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._init_schema()

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _init_schema(self) -> None:
        """Initialize database schema if not exists."""
        with self._get_connection() as conn:
            conn.executescript(self.SCHEMA)
            logger.info(f"Database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper settings.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(
            self.db_path,
            timeout=30.0  # Wait up to 30 seconds for locks to clear
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # =========================================================================
    # ORDER TAX RECORDS
    # =========================================================================

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> OrderTaxRecord:
        """Rebuild an OrderTaxRecord from a stored row."""
        jurisdiction = Jurisdiction(
            country=row["tax_country"],
            province=row["tax_province"],
            city=row["tax_city"],
            postal_code=row["tax_postal_code"],
        )
        breakdown = TaxBreakdown(
            jurisdiction=jurisdiction,
            detailed_lines=[
                TaxLineDetail.model_validate(line)
                for line in json.loads(row["tax_breakdown"] or "[]")
            ],
            **{column: row[column] for column in Database.AMOUNT_COLUMNS},
        )
        return OrderTaxRecord(
            order_id=row["order_id"],
            order_name=row["order_name"],
            currency=row["currency"],
            total_tax_cents=row["total_tax_cents"],
            breakdown=breakdown,
            validation=ValidationResult(
                is_valid=bool(row["is_valid"]),
                calculated_total_cents=row["calculated_total_cents"],
                expected_total_cents=row["total_tax_cents"],
                difference_cents=row["difference_cents"],
            ),
            checksum=row["checksum"],
            customer_email=row["customer_email"],
            order_created_at=row["order_created_at"],
            processed_at=row["processed_at"],
        )

    def get_record(self, order_id: str) -> Optional[OrderTaxRecord]:
        """Get the stored tax record for an order.

        Args:
            order_id: Shopify order ID

        Returns:
            OrderTaxRecord or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM order_tax_records WHERE order_id = ?",
                (order_id,)
            )
            row = cursor.fetchone()
            if row:
                return self._row_to_record(row)
            return None

    def get_checksum(self, order_id: str) -> Optional[str]:
        """Get the stored checksum for an order, if it was processed before."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT checksum FROM order_tax_records WHERE order_id = ?",
                (order_id,)
            )
            row = cursor.fetchone()
            return row["checksum"] if row else None

    def upsert_record(self, record: OrderTaxRecord) -> None:
        """Insert or update the tax record for an order.

        Args:
            record: OrderTaxRecord to save
        """
        breakdown = record.breakdown
        jurisdiction = breakdown.jurisdiction
        columns = [
            "order_id", "order_name", "currency", "total_tax_cents",
            *self.AMOUNT_COLUMNS,
            "tax_country", "tax_province", "tax_city", "tax_postal_code",
            "tax_breakdown", "is_valid", "calculated_total_cents", "difference_cents",
            "checksum", "customer_email", "order_created_at", "processed_at",
        ]
        values = (
            record.order_id,
            record.order_name,
            record.currency,
            record.total_tax_cents,
            *(breakdown.amount_for(category) for category in TaxCategory),
            jurisdiction.country,
            jurisdiction.province,
            jurisdiction.city,
            jurisdiction.postal_code,
            json.dumps([line.model_dump(mode="json") for line in breakdown.detailed_lines]),
            int(record.validation.is_valid),
            record.validation.calculated_total_cents,
            record.validation.difference_cents,
            record.checksum,
            record.customer_email,
            _utc_timestamp(record.order_created_at),
            record.processed_at or datetime.utcnow(),
        )
        updates = ", ".join(f"{column} = excluded.{column}" for column in columns[1:])

        with self._get_connection() as conn:
            conn.execute(
                f"""
                INSERT INTO order_tax_records ({", ".join(columns)})
                VALUES ({", ".join("?" for _ in columns)})
                ON CONFLICT(order_id) DO UPDATE SET {updates}
                """,
                values,
            )
            logger.debug(f"Upserted tax record for order {record.order_id}")

    def delete_record(self, order_id: str) -> bool:
        """Delete the tax record for an order.

        Args:
            order_id: Shopify order ID to delete

        Returns:
            True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM order_tax_records WHERE order_id = ?",
                (order_id,)
            )
            return cursor.rowcount > 0

    def get_mismatched_records(self, limit: int = 100) -> List[OrderTaxRecord]:
        """Get orders whose breakdown didn't reconcile with Shopify's total.

        Args:
            limit: Maximum number of records to return

        Returns:
            List of OrderTaxRecord, largest difference first
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM order_tax_records
                WHERE is_valid = 0
                ORDER BY difference_cents DESC, order_id
                LIMIT ?
                """,
                (limit,)
            )
            return [self._row_to_record(row) for row in cursor.fetchall()]

    def get_category_totals(
        self,
        currency: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict[str, dict[TaxCategory, int]]:
        """Sum tax amounts per category - the money to set aside.

        Args:
            currency: Only include orders in this currency
            start: Only include orders created at or after this time (naive means UTC)
            end: Only include orders created before this time (naive means UTC)

        Returns:
            Mapping of currency to per-category totals in minor units
        """
        sums = ", ".join(f"SUM({column}) AS {column}" for column in self.AMOUNT_COLUMNS)
        conditions = []
        params: list = []
        if currency:
            conditions.append("currency = ?")
            params.append(currency)
        if start:
            conditions.append("order_created_at >= ?")
            params.append(_utc_timestamp(start))
        if end:
            conditions.append("order_created_at < ?")
            params.append(_utc_timestamp(end))
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"SELECT currency, {sums} FROM order_tax_records {where} GROUP BY currency",
                params,
            )
            return {
                row["currency"]: {
                    category: row[CATEGORY_AMOUNT_FIELDS[category]] or 0
                    for category in TaxCategory
                }
                for row in cursor.fetchall()
            }

    # =========================================================================
    # IMPORT HISTORY
    # =========================================================================

    def start_import_run(self, run_id: str) -> None:
        """Record the start of an import run.

        Args:
            run_id: Unique ID for this import run
        """
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO import_history (run_id, started_at, status, orders_processed, mismatches, errors)
                VALUES (?, ?, 'running', 0, 0, '[]')
                """,
                (run_id, datetime.utcnow())
            )
            logger.info(f"Started import run: {run_id}")

    def complete_import_run(
        self,
        run_id: str,
        status: str,
        orders_processed: int,
        mismatches: int,
        errors: List[str]
    ) -> None:
        """Record completion of an import run.

        Args:
            run_id: Import run ID
            status: Final status (success, failed)
            orders_processed: Number of orders processed
            mismatches: Number of orders that failed reconciliation
            errors: List of error messages
        """
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE import_history
                SET completed_at = ?,
                    status = ?,
                    orders_processed = ?,
                    mismatches = ?,
                    errors = ?
                WHERE run_id = ?
                """,
                (datetime.utcnow(), status, orders_processed, mismatches, json.dumps(errors), run_id)
            )
            logger.info(f"Completed import run: {run_id} with status {status}")

    @staticmethod
    def _row_to_history(row: sqlite3.Row) -> ImportHistoryEntry:
        return ImportHistoryEntry(
            run_id=row["run_id"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            status=row["status"],
            orders_processed=row["orders_processed"],
            mismatches=row["mismatches"],
            errors=json.loads(row["errors"]) if row["errors"] else [],
        )

    def get_import_history(self, limit: int = 10) -> List[ImportHistoryEntry]:
        """Get recent import history.

        Args:
            limit: Maximum number of entries to return

        Returns:
            List of ImportHistoryEntry objects
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM import_history ORDER BY started_at DESC LIMIT ?",
                (limit,)
            )
            return [self._row_to_history(row) for row in cursor.fetchall()]

    def get_last_successful_import(self) -> Optional[ImportHistoryEntry]:
        """Get the most recent successful import run.

        Returns:
            ImportHistoryEntry or None if no successful imports
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM import_history
                WHERE status = 'success'
                ORDER BY completed_at DESC
                LIMIT 1
                """
            )
            row = cursor.fetchone()
            return self._row_to_history(row) if row else None

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def get_stats(self) -> dict:
        """Get database statistics.

        Returns:
            Dictionary with counts and statistics
        """
        with self._get_connection() as conn:
            stats = {}

            cursor = conn.execute(
                "SELECT COUNT(*) AS count, COALESCE(SUM(is_valid = 0), 0) AS mismatched "
                "FROM order_tax_records"
            )
            row = cursor.fetchone()
            stats["orders"] = row["count"]
            stats["mismatched_orders"] = row["mismatched"]

            last_import = self.get_last_successful_import()
            if last_import and last_import.completed_at:
                stats["last_successful_import"] = last_import.completed_at.isoformat()
            else:
                stats["last_successful_import"] = None

            return stats
