"""Pytest fixtures for order-service tests.

DB もネットワークも使わない。リポジトリはインメモリ実装、
下流サービスは httpx.MockTransport で差し替える。
"""

import copy
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from order_service.aggregation import OrderAggregationGateway
from order_service.clients import CartClient, ShippingClient
from order_service.errors import NotFoundError
from order_service.main import AppComponents, create_app
from order_service.models import Order
from order_service.repository import OrderRepository, Transaction, TransactionManager
from order_service.service import OrderService


# ── インメモリ実装 ───────────────────────────────


class InMemoryTransaction(Transaction):
    """書き込みを溜めておき、commit で反映、rollback で破棄する。"""

    def __init__(self, manager: "InMemoryTransactionManager"):
        self.manager = manager
        self.staged: list[Order] = []
        self.committed = False
        self.rolled_back = False

    async def __aenter__(self) -> "InMemoryTransaction":
        if self.manager.fail_begin:
            raise RuntimeError("could not acquire connection")
        self.manager.begun.append(self)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self.committed and not self.rolled_back:
            await self.rollback()

    async def commit(self) -> None:
        if self.manager.fail_commit:
            raise RuntimeError("commit failed")
        for order in self.staged:
            self.manager.repository.rows[order.id] = copy.deepcopy(order)
        self.committed = True

    async def rollback(self) -> None:
        self.staged.clear()
        self.rolled_back = True


class InMemoryTransactionManager(TransactionManager):
    def __init__(self, repository: "InMemoryOrderRepository"):
        self.repository = repository
        self.begun: list[InMemoryTransaction] = []
        self.fail_begin = False
        self.fail_commit = False

    def begin(self) -> InMemoryTransaction:
        return InMemoryTransaction(self)


class InMemoryOrderRepository(OrderRepository):
    def __init__(self):
        self.rows: dict[str, Order] = {}
        self._next_id = 1
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)
        # この商品の明細を INSERT しようとすると失敗する
        self.fail_item_product: str | None = None
        self.fail_reads = False

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def find_by_id(self, order_id: str) -> Order:
        if self.fail_reads:
            raise RuntimeError("connection reset")
        if order_id not in self.rows:
            raise NotFoundError("order", order_id)
        return copy.deepcopy(self.rows[order_id])

    async def find_by_user(self, user_id: str) -> list[Order]:
        if self.fail_reads:
            raise RuntimeError("connection reset")
        orders = [o for o in self.rows.values() if o.user_id == user_id]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return [copy.deepcopy(o) for o in orders]

    async def create(self, order: Order) -> Order:
        self._assign(order)
        self.rows[order.id] = copy.deepcopy(order)
        return order

    async def create_in_transaction(self, tx: Transaction, order: Order) -> Order:
        assert isinstance(tx, InMemoryTransaction)
        # 注文行 → 明細行の順
        self._assign(order)
        tx.staged.append(order)
        for item in order.items:
            if item.product_id == self.fail_item_product:
                raise RuntimeError(f"insert into order_items failed for {item.product_id}")
        return order

    async def update_status(self, order_id: str, status: str) -> None:
        if order_id not in self.rows:
            raise NotFoundError("order", order_id)
        self.rows[order_id].status = status
        self.rows[order_id].updated_at = self._tick()

    def _assign(self, order: Order) -> None:
        order.id = str(self._next_id)
        self._next_id += 1
        order.created_at = order.updated_at = self._tick()


# ── 下流サービスのスタブ ─────────────────────────


class DownstreamStub:
    """MockTransport のハンドラ。受け取ったリクエストを記録する。"""

    def __init__(self, status_code: int = 200, json=None, exc: Exception | None = None):
        self.status_code = status_code
        self.json = json
        self.exc = exc
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        if self.json is None:
            return httpx.Response(self.status_code)
        return httpx.Response(self.status_code, json=self.json)


def mock_http(stub: DownstreamStub, base_url: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(stub), base_url=base_url)


SHIPMENT = {
    "id": 7,
    "order_id": 1,
    "tracking_number": "TRK-0001",
    "carrier": "Yamato",
    "status": "in_transit",
    "created_at": "2026-01-02T10:00:00Z",
    "updated_at": "2026-01-02T12:00:00Z",
}


# ── Fixtures ─────────────────────────────────────


@pytest.fixture
def repository():
    return InMemoryOrderRepository()


@pytest.fixture
def tx_manager(repository):
    return InMemoryTransactionManager(repository)


@pytest.fixture
def service(repository, tx_manager):
    return OrderService(repository, tx_manager)


@pytest.fixture
def shipping_stub():
    return DownstreamStub(200, json=SHIPMENT)


@pytest.fixture
def cart_stub():
    return DownstreamStub(204)


@pytest.fixture
def shipping_client(shipping_stub):
    return ShippingClient(mock_http(shipping_stub, "http://shipping.test/api/v1/shipping"))


@pytest.fixture
def cart_client(cart_stub):
    return CartClient(mock_http(cart_stub, "http://cart.test/api/v1"))


@pytest.fixture
def gateway(service, shipping_client):
    return OrderAggregationGateway(service, shipping_client)


@pytest.fixture
def client(service, gateway, cart_client):
    app = create_app(
        components=AppComponents(
            order_service=service,
            gateway=gateway,
            cart_client=cart_client,
        )
    )
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def sample_order_payload():
    return {
        "items": [
            {"product_id": "p1", "quantity": 2, "price": 10.0},
            {"product_id": "p2", "quantity": 1, "price": 5.0},
        ]
    }
