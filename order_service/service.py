"""
Order Service — サービス層

注文の作成・取得・一覧・ステータス更新を担当する。
ストア層の NotFoundError はここで OrderNotFoundError に変換する。

注文作成のフロー:
    1. 明細が空なら InvalidOrderError
    2. 明細ごとに小計を計算し、合計する (商品名がなければ補完)
    3. 送料 5.00 を加えて合計金額を決める。ステータスは pending
    4. トランザクション内で注文行と明細行を INSERT
    5. コミット
"""

import logging
from decimal import Decimal

from .errors import InvalidOrderError, NotFoundError, OrderNotFoundError
from .models import (
    MONEY_LIMIT,
    SHIPPING_FEE,
    STATUS_PENDING,
    SYNTHESIZED_NAME_PREFIX,
    CreateOrderRequest,
    Order,
    OrderItem,
)
from .repository import OrderRepository, TransactionManager

logger = logging.getLogger(__name__)


def build_order(user_id: str, request: CreateOrderRequest) -> Order:
    """
    リクエストから金額計算済みの注文を組み立てる (まだ保存しない)。

    小計・合計が NUMERIC(10,2) に収まらない場合は InvalidOrderError。
    """
    items: list[OrderItem] = []
    subtotal = Decimal("0")
    for req_item in request.items:
        item_subtotal = req_item.price * req_item.quantity
        if item_subtotal >= MONEY_LIMIT:
            raise InvalidOrderError(f"item subtotal too large: {req_item.product_id}")
        subtotal += item_subtotal
        items.append(
            OrderItem(
                product_id=req_item.product_id,
                product_name=req_item.product_name or f"{SYNTHESIZED_NAME_PREFIX}{req_item.product_id}",
                quantity=req_item.quantity,
                price=req_item.price,
                subtotal=item_subtotal,
            )
        )

    total = subtotal + SHIPPING_FEE
    if total >= MONEY_LIMIT:
        raise InvalidOrderError("order total too large")

    return Order(
        user_id=user_id,
        status=STATUS_PENDING,
        items=items,
        subtotal=subtotal,
        shipping=SHIPPING_FEE,
        total=total,
    )


class OrderService:
    def __init__(self, repository: OrderRepository, tx_manager: TransactionManager):
        self.repository = repository
        self.tx_manager = tx_manager

    async def list_orders(self, user_id: str) -> list[Order]:
        orders = await self.repository.find_by_user(user_id)
        logger.info("Listed %d orders for user %s", len(orders), user_id)
        return orders

    async def get_order(self, order_id: str) -> Order:
        try:
            return await self.repository.find_by_id(order_id)
        except NotFoundError:
            raise OrderNotFoundError(order_id) from None

    async def create_order(self, user_id: str, request: CreateOrderRequest) -> Order:
        if not request.items:
            raise InvalidOrderError("order must contain at least one item")

        order = build_order(user_id, request)

        async with self.tx_manager.begin() as tx:
            await self.repository.create_in_transaction(tx, order)

            # 在庫の引き当て・決済・イベント発行はこのサービスでは行わない。
            # 在庫サービスと連携する場合はここで同じトランザクション内に追加する。

            await tx.commit()

        logger.info(
            "Order %s created for user %s (%d items, total %s)",
            order.id,
            user_id,
            len(order.items),
            order.total,
        )
        return order

    async def update_order_status(self, order_id: str, status: str) -> None:
        """ステータスを更新する。遷移の妥当性は検証しない。"""
        try:
            await self.repository.update_status(order_id, status)
        except NotFoundError:
            raise OrderNotFoundError(order_id) from None
        logger.info("Order %s status updated to %s", order_id, status)
