"""
Order Service — 注文詳細の集約

注文 (このサービスのデータ) と出荷情報 (配送サービスのデータ) を
1 回のレスポンスにまとめる。

出荷情報は付加情報にすぎない。配送サービスがタイムアウトしても、
エラーを返しても、注文だけは必ず返す。
"""

import logging

from .clients import ShippingClient
from .errors import DownstreamError
from .models import OrderDetails
from .service import OrderService

logger = logging.getLogger(__name__)


class OrderAggregationGateway:
    def __init__(self, orders: OrderService, shipping: ShippingClient):
        self.orders = orders
        self.shipping = shipping

    async def get_order_details(self, order_id: str) -> OrderDetails:
        # OrderNotFoundError はそのまま呼び出し側へ
        order = await self.orders.get_order(order_id)

        try:
            shipment = await self.shipping.get_shipment_by_order_id(order.id)
        except DownstreamError as e:
            logger.warning("Could not fetch shipment for order %s: %s", order_id, e)
            shipment = None

        logger.info(
            "Order details retrieved for order %s (has_shipment=%s)",
            order_id,
            shipment is not None,
        )
        return OrderDetails(order=order, shipment=shipment)
