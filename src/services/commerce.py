import logging
from typing import Optional, Protocol

import httpx

from src.shared.schemas import CartContext, CustomerCart

logger = logging.getLogger(__name__)


class CommerceClient(Protocol):
    async def get_customer_cart(self, customer_id: str) -> Optional[CustomerCart]: ...


class NullCommerceClient:
    """Used when no commerce backend is configured; never enriches context."""

    async def get_customer_cart(self, customer_id: str) -> Optional[CustomerCart]:
        return None


class HttpCommerceClient:
    """
    Read-only lookups against the storefront's customer API.

    Expects `GET {base_url}/customers/{id}/cart` to answer with
    `{"customer": {"firstName": ..., "cart": {"lines": [...]}}}`.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def get_customer_cart(self, customer_id: str) -> Optional[CustomerCart]:
        response = await self.client.get(f"/customers/{customer_id}/cart")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()

        customer = response.json().get("customer")
        if not customer:
            return None

        lines = (customer.get("cart") or {}).get("lines") or []
        cart_items = []
        for line in lines:
            merchandise = line.get("merchandise") or {}
            product = merchandise.get("product") or {}
            cart_items.append(
                CartContext(
                    productId=product.get("id", ""),
                    productTitle=product.get("title", ""),
                    quantity=int(line.get("quantity", 0)),
                    price=str((merchandise.get("price") or {}).get("amount", "")),
                )
            )
        return CustomerCart(customerName=customer.get("firstName"), cartItems=cart_items)

    async def aclose(self) -> None:
        await self.client.aclose()
