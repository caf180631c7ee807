import asyncio
import logging
from typing import Dict, List

from partipay.core.config import settings
from partipay.core.exceptions import NotFoundError, TransientUnavailableError
from partipay.schemas.session import BillItemBase, BillLookupResponse
from partipay.utils.money import to_cents

logger = logging.getLogger(__name__)

# Mock POS data keyed by "<restaurant>-<table>". A real integration would
# call the restaurant's point-of-sale API here.
MOCK_BILLS: Dict[str, List[dict]] = {
    "De Blauwe Kater-12": [
        {"name": "Gentse Waterzooi", "price": "18.50", "quantity": 1},
        {"name": "Vlaamse Stoofpot", "price": "22.00", "quantity": 1},
        {"name": "Frieten met Mayo", "price": "6.50", "quantity": 2},
        {"name": "Duvel (33cl)", "price": "4.20", "quantity": 2},
        {"name": "Jupiler (25cl)", "price": "3.50", "quantity": 1},
        {"name": "Belgische Wafels", "price": "8.00", "quantity": 1},
    ],
}


class PosService:
    @staticmethod
    async def _fetch(table_number: str, restaurant_name: str) -> BillLookupResponse:
        key = f"{restaurant_name}-{table_number}"
        lines = MOCK_BILLS.get(key)
        if lines is None:
            raise NotFoundError(f"Bill not found for table {table_number} at {restaurant_name}")

        items = [
            BillItemBase(
                name=line["name"],
                unit_price_cents=to_cents(line["price"]),
                quantity=line["quantity"]
            )
            for line in lines
        ]
        return BillLookupResponse(
            restaurant_name=restaurant_name,
            table_number=table_number,
            items=items,
            total_amount_cents=sum(i.unit_price_cents * i.quantity for i in items)
        )

    @staticmethod
    async def lookup_bill(table_number: str, restaurant_name: str) -> BillLookupResponse:
        """Fetch the open bill for a table. Raises NotFoundError or TransientUnavailableError."""
        try:
            return await asyncio.wait_for(
                PosService._fetch(table_number, restaurant_name),
                timeout=settings.POS_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            logger.warning("POS lookup timed out for %s table %s", restaurant_name, table_number)
            raise TransientUnavailableError("POS system did not respond in time")
