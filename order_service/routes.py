"""
Order Service — HTTP エンドポイント

ハンドラは入力をサービス呼び出しに変換するだけ。
例外から HTTP ステータスへの変換は main.py の例外ハンドラで行う。
"""

import logging

from fastapi import APIRouter, Depends, Request

from .aggregation import OrderAggregationGateway
from .auth import require_user_id
from .clients import CartClient
from .errors import DownstreamError
from .models import CreateOrderRequest, Order, UpdateStatusRequest
from .service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


# ── Dependencies ─────────────────────────────────


def get_order_service(request: Request) -> OrderService:
    return request.app.state.components.order_service


def get_gateway(request: Request) -> OrderAggregationGateway:
    return request.app.state.components.gateway


def get_cart_client(request: Request) -> CartClient:
    return request.app.state.components.cart_client


# ── Endpoints ────────────────────────────────────


@router.get("")
async def list_orders(
    user_id: str = Depends(require_user_id),
    service: OrderService = Depends(get_order_service),
):
    """認証済みユーザーの注文一覧"""
    orders = await service.list_orders(user_id)
    return [order.model_dump(mode="json") for order in orders]


@router.get("/{order_id}")
async def get_order(order_id: str, service: OrderService = Depends(get_order_service)):
    order = await service.get_order(order_id)
    return order.model_dump(mode="json")


@router.get("/{order_id}/details")
async def get_order_details(
    order_id: str,
    gateway: OrderAggregationGateway = Depends(get_gateway),
):
    """注文と出荷情報の集約。出荷情報がなければ shipment キーを省く。"""
    details = await gateway.get_order_details(order_id)
    exclude = {"shipment"} if details.shipment is None else None
    return details.model_dump(mode="json", exclude=exclude)


@router.post("", status_code=201)
async def create_order(
    req: CreateOrderRequest,
    request: Request,
    user_id: str = Depends(require_user_id),
    service: OrderService = Depends(get_order_service),
    cart: CartClient = Depends(get_cart_client),
):
    """
    注文作成

    フェーズ 1: 注文をトランザクションで保存する (失敗したらリクエストも失敗)
    フェーズ 2: カートをクリアする (ベストエフォート。失敗しても注文は取り消さない)
    """
    order = await service.create_order(user_id, req)

    await clear_cart_best_effort(cart, order, request.headers.get("Authorization"))

    return order.model_dump(mode="json")


@router.put("/{order_id}/status")
async def update_order_status(
    order_id: str,
    req: UpdateStatusRequest,
    service: OrderService = Depends(get_order_service),
):
    await service.update_order_status(order_id, req.status)
    return {"id": order_id, "status": req.status}


async def clear_cart_best_effort(
    cart: CartClient, order: Order, authorization: str | None
) -> None:
    try:
        await cart.clear_cart(authorization)
    except DownstreamError as e:
        logger.warning("Best-effort cart clear failed after order %s: %s", order.id, e)
