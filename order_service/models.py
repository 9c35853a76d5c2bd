"""
Order Service — ドメインモデル

注文集約 (Order) と、それに従属する明細 (OrderItem) を定義する。
明細は必ずひとつの注文に属し、単独では保存されない。

金額は Decimal で保持し、JSON には数値として出力する。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_serializer

SHIPPING_FEE = Decimal("5.00")
STATUS_PENDING = "pending"

# スキーマ (migrations/V1__init_schema.sql) の列の上限
INT4_MAX = 2**31 - 1
MAX_TEXT_LENGTH = 255  # VARCHAR(255)
MONEY_LIMIT = Decimal("100000000")  # NUMERIC(10,2) は 10^8 未満
SYNTHESIZED_NAME_PREFIX = "Product "


class OrderItem(BaseModel):
    """注文明細。商品名と単価は注文時点のスナップショット"""

    product_id: str
    product_name: str
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    subtotal: Decimal = Field(ge=0)

    @field_serializer("price", "subtotal", when_used="json")
    def serialize_money(self, value: Decimal) -> float:
        return float(value)


class Order(BaseModel):
    """
    注文集約

    不変条件:
        subtotal == sum(item.subtotal)
        total    == subtotal + shipping
    """

    id: str | None = None
    user_id: str
    status: str = STATUS_PENDING
    items: list[OrderItem] = Field(default_factory=list)
    subtotal: Decimal
    shipping: Decimal = SHIPPING_FEE
    total: Decimal
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_serializer("subtotal", "shipping", "total", when_used="json")
    def serialize_money(self, value: Decimal) -> float:
        return float(value)


# ── Request Models ───────────────────────────────


class OrderItemRequest(BaseModel):
    # 商品名を補完しても VARCHAR(255) に収まる長さ
    product_id: str = Field(min_length=1, max_length=MAX_TEXT_LENGTH - len(SYNTHESIZED_NAME_PREFIX))
    product_name: str | None = Field(default=None, max_length=MAX_TEXT_LENGTH)
    quantity: int = Field(gt=0, le=INT4_MAX)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)


class CreateOrderRequest(BaseModel):
    """
    注文作成リクエスト

    user_id はペイロードに含めない。HTTP 層が認証済みの ID を注入する。
    """

    items: list[OrderItemRequest]


class UpdateStatusRequest(BaseModel):
    status: str = Field(min_length=1, max_length=50)


# ── 配送サービス集約 ─────────────────────────────


class Shipment(BaseModel):
    """配送サービスが返す出荷情報"""

    id: int
    order_id: int
    tracking_number: str
    carrier: str | None = None
    status: str
    estimated_delivery: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class OrderDetails(BaseModel):
    """注文と出荷情報をまとめた集約レスポンス"""

    order: Order
    shipment: Shipment | None = None
