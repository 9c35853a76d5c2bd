"""
Order Service — FastAPI エントリーポイント

起動時 (lifespan) に設定を読み込み、DB エンジンと下流サービスの
HTTP クライアントを一度だけ作成して各コンポーネントに注入する。
グローバル変数にクライアントを置かない。

    uvicorn order_service.main:app --host 0.0.0.0 --port 8080

┌──────────┐    ┌───────────────┐    ┌──────────────┐
│ Handler  │───▶│ OrderService  │───▶│ Order Store  │──▶ PostgreSQL
│          │    └───────────────┘    └──────────────┘
│          │───▶ Cart Service      (注文コミット後、ベストエフォート)
│          │───▶ Shipping Service  (注文詳細の集約、失敗しても注文は返す)
└──────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import database
from .aggregation import OrderAggregationGateway
from .auth import DEFAULT_USER_HEADER, bind_identity
from .clients import CartClient, ShippingClient, build_http_client
from .config import Settings
from .errors import InvalidOrderError, OrderNotFoundError, UnauthorizedError
from .routes import router
from .service import OrderService
from .store import PostgresOrderRepository, PostgresTransactionManager
from .validation import sanitize_validation_error

logger = logging.getLogger(__name__)


@dataclass
class AppComponents:
    order_service: OrderService
    gateway: OrderAggregationGateway
    cart_client: CartClient


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


@asynccontextmanager
async def build_components(settings: Settings):
    """DB エンジンと HTTP クライアントを作り、終了時に必ず閉じる。"""
    engine = await database.connect(settings)
    session_factory = database.create_session_factory(engine)
    shipping = ShippingClient(
        build_http_client(settings.shipping_service_url, settings.shipping_timeout_seconds)
    )
    cart = CartClient(
        build_http_client(settings.cart_service_url, settings.cart_timeout_seconds)
    )

    order_service = OrderService(
        PostgresOrderRepository(session_factory),
        PostgresTransactionManager(session_factory),
    )
    try:
        yield AppComponents(
            order_service=order_service,
            gateway=OrderAggregationGateway(order_service, shipping),
            cart_client=cart,
        )
    finally:
        await shipping.aclose()
        await cart.aclose()
        await engine.dispose()


def create_app(
    components: AppComponents | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    アプリケーションを組み立てる。

    components を渡した場合はそれをそのまま使う (テスト用)。
    渡さない場合は起動時に環境変数から設定を読み込み、実際の
    DB と下流サービスに接続する。設定が不足していれば起動に失敗する。
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if components is not None:
            yield
            return

        cfg = settings or Settings.from_env()
        configure_logging(cfg.log_level)
        app.state.identity_header = cfg.auth_user_header
        async with build_components(cfg) as built:
            app.state.components = built
            logger.info("Order service started")
            yield
        logger.info("Order service stopped")

    app = FastAPI(title="Order Service", lifespan=lifespan)
    if components is not None:
        app.state.identity_header = DEFAULT_USER_HEADER
        app.state.components = components
    app.middleware("http")(bind_identity)
    app.include_router(router)
    register_exception_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "order-service"}

    return app


# ── 例外 → HTTP ステータス ───────────────────────


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(OrderNotFoundError)
    async def order_not_found(request: Request, exc: OrderNotFoundError):
        logger.info("Order not found: %s", exc.order_id)
        return _error(404, "Order not found")

    @app.exception_handler(InvalidOrderError)
    async def invalid_order(request: Request, exc: InvalidOrderError):
        logger.info("Invalid order: %s", exc)
        return _error(400, "Invalid order")

    @app.exception_handler(UnauthorizedError)
    async def unauthorized(request: Request, exc: UnauthorizedError):
        logger.warning("%s %s: no user_id bound to request", request.method, request.url.path)
        return _error(401, "Authentication required")

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        logger.info("Invalid request to %s: %s", request.url.path, errors)
        message = str(errors[0].get("msg", "")) if errors else ""
        return _error(400, sanitize_validation_error(message))

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception):
        logger.error(
            "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
        )
        return _error(500, "Internal server error")


app = create_app()
