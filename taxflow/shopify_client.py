"""Shopify Admin API client.

Handles authentication, rate limiting, and fetching orders (with their
tax lines and addresses) from Shopify.
"""

import asyncio
import logging
from typing import List, Optional, AsyncGenerator
from datetime import datetime

import httpx
from pydantic import ValidationError

from .config import Settings
from .models import ShopifyOrder

logger = logging.getLogger(__name__)


class ShopifyAPIError(Exception):
    """Base exception for Shopify API errors."""
    pass


class ShopifyRateLimitError(ShopifyAPIError):
    """Raised when rate limit is exceeded."""
    def __init__(self, retry_after: float = 2.0):
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Retry after {retry_after}s")


class ShopifyAuthError(ShopifyAPIError):
    """Raised when authentication fails."""
    pass


class ShopifyClient:
    """Async client for Shopify Admin API."""

    # Shopify REST Admin API version
    API_VERSION = "2024-01"

    # Only the fields the tax breakdown needs
    ORDER_FIELDS = (
        "id,order_number,name,email,created_at,updated_at,processed_at,currency,"
        "total_price,subtotal_price,total_tax,taxes_included,financial_status,"
        "customer,tax_lines,billing_address,shipping_address"
    )

    def __init__(self, settings: Settings):
        """Initialize Shopify client.

        Args:
            settings: Application settings with Shopify credentials
        """
        self.settings = settings
        self.base_url = f"{settings.shopify_shop_url}/admin/api/{self.API_VERSION}"
        self.rate_limit_delay = settings.shopify_rate_limit_delay
        self.max_retries = settings.max_retries
        self._last_request_time: Optional[float] = None
        self._client: Optional[httpx.AsyncClient] = None
        self._access_token: Optional[str] = settings.shopify_access_token

    async def __aenter__(self) -> "ShopifyClient":
        """Async context manager entry."""
        if not self.settings.shopify_shop_url:
            raise ShopifyAPIError("No shop URL configured. Set SHOPIFY_SHOP_URL.")
        if not self._access_token:
            raise ShopifyAuthError(
                "No access token available. Set SHOPIFY_ACCESS_TOKEN."
            )

        self._client = httpx.AsyncClient(
            headers={
                "X-Shopify-Access-Token": self._access_token,
                "Content-Type": "application/json",
            },
            timeout=30.0,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _respect_rate_limit(self) -> None:
        """Ensure we don't exceed rate limits.

        Adds delay between requests to stay under 2 calls/second.
        """
        loop = asyncio.get_running_loop()
        if self._last_request_time is not None:
            elapsed = loop.time() - self._last_request_time
            if elapsed < self.rate_limit_delay:
                await asyncio.sleep(self.rate_limit_delay - elapsed)
        self._last_request_time = loop.time()

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> dict:
        """Make an API request with rate limiting and retries.

        Args:
            method: HTTP method
            endpoint: API endpoint (e.g., "/orders.json")
            params: Query parameters

        Returns:
            JSON response as dictionary

        Raises:
            ShopifyAPIError: On API errors
            ShopifyAuthError: On authentication failures
            ShopifyRateLimitError: On rate limit (after retries exhausted)
        """
        if not self._client:
            raise ShopifyAPIError("Client not initialized. Use async context manager.")

        url = f"{self.base_url}{endpoint}"
        retries = self.max_retries
        retry_after = 2.0

        for attempt in range(retries):
            await self._respect_rate_limit()

            try:
                response = await self._client.request(method=method, url=url, params=params)
            except httpx.TimeoutException:
                logger.warning(f"Request timeout (attempt {attempt + 1}/{retries})")
                if attempt < retries - 1:
                    await asyncio.sleep(2 ** attempt)  # Exponential backoff
                    continue
                raise ShopifyAPIError(f"Request timeout after {retries} attempts")
            except httpx.RequestError as e:
                logger.warning(f"Request error (attempt {attempt + 1}/{retries}): {e}")
                if attempt < retries - 1:
                    await asyncio.sleep(2 ** attempt)
                    continue
                raise ShopifyAPIError(f"Request failed: {e}")

            call_limit = response.headers.get("X-Shopify-Shop-Api-Call-Limit", "unknown")
            logger.debug(f"Shopify API call: {method} {endpoint} (limit: {call_limit})")

            if response.status_code == 200:
                return response.json()
            elif response.status_code == 401:
                raise ShopifyAuthError("Invalid access token")
            elif response.status_code == 429:
                retry_after = float(response.headers.get("Retry-After", "2.0"))
                logger.warning(f"Rate limit hit, waiting {retry_after}s")
                await asyncio.sleep(retry_after)
                continue
            elif response.status_code == 404:
                raise ShopifyAPIError(f"Resource not found: {endpoint}")
            else:
                raise ShopifyAPIError(
                    f"API error {response.status_code}: {response.text}"
                )

        raise ShopifyRateLimitError(retry_after)

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def fetch_orders(
        self,
        since_id: Optional[int] = None,
        created_at_min: Optional[datetime] = None,
        status: str = "any",
        limit: int = 50,
    ) -> List[ShopifyOrder]:
        """Fetch orders from Shopify.

        Args:
            since_id: Only fetch orders after this ID
            created_at_min: Only fetch orders created after this time
            status: Order status filter (any, open, closed, cancelled)
            limit: Maximum orders per request (max 250)

        Returns:
            List of ShopifyOrder objects
        """
        params = {"limit": min(limit, 250), "status": status, "fields": self.ORDER_FIELDS}
        if since_id:
            params["since_id"] = since_id
        if created_at_min:
            params["created_at_min"] = created_at_min.isoformat()

        response = await self._request("GET", "/orders.json", params=params)

        orders = []
        for order_data in response.get("orders", []):
            try:
                orders.append(ShopifyOrder.model_validate(order_data))
            except ValidationError as e:
                logger.error(f"Failed to parse order {order_data.get('id')}: {e}")
                continue

        logger.info(f"Fetched {len(orders)} orders from Shopify")
        return orders

    async def fetch_all_orders(
        self,
        created_at_min: Optional[datetime] = None,
        status: str = "any",
        max_orders: Optional[int] = None,
    ) -> AsyncGenerator[ShopifyOrder, None]:
        """Fetch all orders with pagination.

        Args:
            created_at_min: Only fetch orders created after this time
            status: Order status filter
            max_orders: Stop after this many orders

        Yields:
            ShopifyOrder objects
        """
        since_id = None
        yielded = 0
        while True:
            orders = await self.fetch_orders(
                since_id=since_id,
                created_at_min=created_at_min,
                status=status,
                limit=250,
            )
            if not orders:
                break

            for order in orders:
                if max_orders is not None and yielded >= max_orders:
                    return
                yield order
                yielded += 1

            since_id = orders[-1].id

    async def get_order(self, order_id: int) -> Optional[ShopifyOrder]:
        """Fetch a single order by ID.

        Args:
            order_id: Shopify order ID

        Returns:
            ShopifyOrder or None if not found
        """
        try:
            response = await self._request(
                "GET", f"/orders/{order_id}.json", params={"fields": self.ORDER_FIELDS}
            )
            return ShopifyOrder.model_validate(response.get("order", {}))
        except ShopifyAPIError as e:
            if "not found" in str(e).lower():
                return None
            raise

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def check_connection(self) -> bool:
        """Verify API connection is working.

        Returns:
            True if connection is successful
        """
        try:
            await self._request("GET", "/shop.json")
            logger.info("Shopify API connection successful")
            return True
        except ShopifyAPIError as e:
            logger.error(f"Shopify API connection failed: {e}")
            return False
