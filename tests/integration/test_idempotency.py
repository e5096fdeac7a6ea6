"""Integration tests for idempotent import behavior.

Tests verify that:
- Importing the same orders repeatedly produces one record per order
- Unchanged orders are skipped on later runs
- Edited orders are reprocessed and their totals replaced
- Category totals don't drift across re-imports
"""

import re

import pytest

from taxflow.config import Settings
from taxflow.constants import TaxCategory
from taxflow.database import Database
from taxflow.import_engine import TaxImportEngine
from taxflow.shopify_client import ShopifyClient

from tests.fixtures.shopify_fixtures import (
    make_shopify_order,
    make_shopify_orders_response,
    make_shopify_tax_line,
    SHOPIFY_ORDER_BC,
    SHOPIFY_ORDER_MISMATCH,
    SHOPIFY_ORDER_ONTARIO,
    SHOPIFY_ORDER_QUEBEC,
    SHOPIFY_ORDER_US,
)


ORDERS_URL = re.compile(r".*/admin/api/2024-01/orders\.json.*")


@pytest.fixture
def mock_settings(mock_env_vars):
    """Create settings with mock environment variables."""
    return Settings(_env_file=None)


@pytest.fixture
def database(mock_settings):
    """Create a real database for integration testing."""
    return Database(mock_settings.database_path)


def _add_import_responses(httpx_mock, orders: list) -> None:
    """One page of orders followed by the empty page that ends pagination."""
    httpx_mock.add_response(url=ORDERS_URL, json=make_shopify_orders_response(orders))
    httpx_mock.add_response(url=ORDERS_URL, json={"orders": []})


async def _run_import(settings: Settings, database: Database):
    async with ShopifyClient(settings) as client:
        engine = TaxImportEngine(settings, database, client)
        return await engine.run_historical_import()


class TestIdempotentImport:
    """Tests for repeated historical imports."""

    @pytest.mark.asyncio
    async def test_first_import_creates_records(self, mock_settings, database, httpx_mock):
        """Test first import stores every order."""
        orders = [SHOPIFY_ORDER_BC, SHOPIFY_ORDER_QUEBEC, SHOPIFY_ORDER_ONTARIO, SHOPIFY_ORDER_US]
        _add_import_responses(httpx_mock, orders)

        result = await _run_import(mock_settings, database)

        assert result.created == 4
        assert result.mismatched == 0
        assert database.get_stats()["orders"] == 4

    @pytest.mark.asyncio
    async def test_second_import_skips_unchanged(self, mock_settings, database, httpx_mock):
        """Test re-importing unchanged orders skips them."""
        orders = [SHOPIFY_ORDER_BC, SHOPIFY_ORDER_MISMATCH]
        _add_import_responses(httpx_mock, orders)
        _add_import_responses(httpx_mock, orders)

        first = await _run_import(mock_settings, database)
        second = await _run_import(mock_settings, database)

        assert first.created == 2
        assert first.mismatched == 1
        assert second.created == 0
        assert second.updated == 0
        assert second.skipped == 2
        assert database.get_stats()["orders"] == 2
        assert len(database.get_mismatched_records()) == 1

    @pytest.mark.asyncio
    async def test_edited_order_updates(self, mock_settings, database, httpx_mock):
        """Test an order edited in Shopify replaces its record."""
        edited = make_shopify_order(
            id=2001,
            order_number=2001,
            total_tax="13.00",
            tax_lines=[
                make_shopify_tax_line("GST", "5.00", 0.05),
                make_shopify_tax_line("PST", "8.00", 0.08),
            ],
        )
        _add_import_responses(httpx_mock, [SHOPIFY_ORDER_BC])
        _add_import_responses(httpx_mock, [edited])

        await _run_import(mock_settings, database)
        result = await _run_import(mock_settings, database)

        assert result.updated == 1
        record = database.get_record("2001")
        assert record.breakdown.pst_amount == 800
        assert record.total_tax_cents == 1300
        assert record.validation.is_valid is True

    @pytest.mark.asyncio
    async def test_totals_stable_across_imports(self, mock_settings, database, httpx_mock):
        """Test set-aside totals don't double count re-imported orders."""
        orders = [SHOPIFY_ORDER_BC, SHOPIFY_ORDER_QUEBEC, SHOPIFY_ORDER_US]
        for _ in range(3):
            _add_import_responses(httpx_mock, orders)

        for _ in range(3):
            await _run_import(mock_settings, database)

        totals = database.get_category_totals()
        assert totals["CAD"][TaxCategory.GST] == 1000
        assert totals["CAD"][TaxCategory.PST] == 700
        assert totals["CAD"][TaxCategory.QST] == 998
        assert totals["USD"][TaxCategory.STATE] == 825
        assert len(database.get_import_history()) == 3


class TestWebhookAndImportTogether:
    """Tests for orders arriving by webhook and by import."""

    @pytest.mark.asyncio
    async def test_webhook_then_import(self, mock_settings, database, httpx_mock):
        """Test an order already processed from a webhook is skipped on import."""
        engine = TaxImportEngine(mock_settings, database)
        action, _ = engine.process_order_payload(SHOPIFY_ORDER_QUEBEC)
        _add_import_responses(httpx_mock, [SHOPIFY_ORDER_QUEBEC])

        result = await _run_import(mock_settings, database)

        assert action == "created"
        assert result.skipped == 1
        assert database.get_stats()["orders"] == 1

    def test_repeated_webhook_delivery(self, mock_settings, database):
        """Test Shopify retrying a webhook doesn't reprocess the order."""
        engine = TaxImportEngine(mock_settings, database)

        actions = [engine.process_order_payload(SHOPIFY_ORDER_ONTARIO)[0] for _ in range(3)]

        assert actions == ["created", "skipped", "skipped"]
        assert database.get_record("2003").breakdown.hst_amount == 1300
