"""
Order Service — PostgreSQL ストア

注文集約 (orders + order_items) を PostgreSQL に保存・取得する。
SQL は text() で直接書く。

注文の作成は必ず「注文行 → 明細行」の順に INSERT する。
明細の INSERT が失敗した場合、呼び出し側のトランザクションごと
ロールバックすれば注文行も残らない。
"""

from datetime import datetime, timezone

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import NotFoundError
from .models import INT4_MAX, Order, OrderItem
from .repository import OrderRepository, Transaction, TransactionManager

_ORDER_COLUMNS = "id, user_id, status, subtotal, shipping, total, created_at, updated_at"
_ITEM_COLUMNS = "order_id, product_id, product_name, quantity, price, subtotal"

_INSERT_ORDER = text("""
    INSERT INTO orders
        (user_id, status, subtotal, shipping, total, created_at, updated_at)
    VALUES
        (:user_id, :status, :subtotal, :shipping, :total, :now, :now)
    RETURNING id
""")

_INSERT_ITEM = text("""
    INSERT INTO order_items
        (order_id, product_id, product_name, quantity, price, subtotal, created_at)
    VALUES
        (:order_id, :product_id, :product_name, :quantity, :price, :subtotal, :now)
""")


# ── トランザクション ─────────────────────────────


class PostgresTransaction(Transaction):
    """AsyncSession ひとつをトランザクションとして扱う。"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self._finished = False

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("transaction has not been started")
        return self._session

    async def __aenter__(self) -> "PostgresTransaction":
        self._session = self._session_factory()
        try:
            # コネクションを確保してトランザクションを開始する
            await self._session.connection()
        except BaseException:
            await self._session.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if not self._finished:
                await self.rollback()
        finally:
            await self.session.close()

    async def commit(self) -> None:
        await self.session.commit()
        self._finished = True

    async def rollback(self) -> None:
        self._finished = True
        await self.session.rollback()


class PostgresTransactionManager(TransactionManager):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    def begin(self) -> PostgresTransaction:
        return PostgresTransaction(self._session_factory)


# ── 行 → ドメインモデル ──────────────────────────


def row_to_item(row) -> OrderItem:
    return OrderItem(
        product_id=row.product_id,
        product_name=row.product_name,
        quantity=row.quantity,
        price=row.price,
        subtotal=row.subtotal,
    )


def row_to_order(row, items: list[OrderItem]) -> Order:
    return Order(
        id=str(row.id),
        user_id=row.user_id,
        status=row.status,
        items=items,
        subtotal=row.subtotal,
        shipping=row.shipping,
        total=row.total,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def parse_order_id(order_id: str) -> int | None:
    """
    外部に公開している ID を内部の整数キーに変換する。変換できなければ None

    受け付けるのは ASCII の数字だけ。符号・空白・区切り文字を許すと
    同じ注文に別名ができてしまう。SERIAL (int4) の範囲外も None。
    """
    if not isinstance(order_id, str) or not (order_id.isascii() and order_id.isdigit()):
        return None
    key = int(order_id)
    return key if 0 < key <= INT4_MAX else None


# ── リポジトリ ───────────────────────────────────


class PostgresOrderRepository(OrderRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_id(self, order_id: str) -> Order:
        """注文行を取得し、2 回目のクエリで明細を取得する。"""
        key = parse_order_id(order_id)
        if key is None:
            raise NotFoundError("order", order_id)

        async with self._session_factory() as session:
            result = await session.execute(
                text(f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = :id"),
                {"id": key},
            )
            row = result.fetchone()
            if not row:
                raise NotFoundError("order", order_id)

            result = await session.execute(
                text(f"""
                    SELECT {_ITEM_COLUMNS}
                    FROM order_items
                    WHERE order_id = :order_id
                    ORDER BY id ASC
                """),
                {"order_id": row.id},
            )
            items = [row_to_item(r) for r in result.fetchall()]

        return row_to_order(row, items)

    async def find_by_user(self, user_id: str) -> list[Order]:
        """ユーザーの注文を新しい順に返す。明細はまとめて 1 クエリで取得する。"""
        async with self._session_factory() as session:
            result = await session.execute(
                text(f"""
                    SELECT {_ORDER_COLUMNS}
                    FROM orders
                    WHERE user_id = :user_id
                    ORDER BY created_at DESC, id DESC
                """),
                {"user_id": user_id},
            )
            rows = result.fetchall()
            if not rows:
                return []

            result = await session.execute(
                text(f"""
                    SELECT {_ITEM_COLUMNS}
                    FROM order_items
                    WHERE order_id IN :order_ids
                    ORDER BY id ASC
                """).bindparams(bindparam("order_ids", expanding=True)),
                {"order_ids": [row.id for row in rows]},
            )
            items_by_order: dict[int, list[OrderItem]] = {}
            for r in result.fetchall():
                items_by_order.setdefault(r.order_id, []).append(row_to_item(r))

        return [row_to_order(row, items_by_order.get(row.id, [])) for row in rows]

    async def create(self, order: Order) -> Order:
        """専用のトランザクションで注文を作成する。"""
        async with self._session_factory() as session:
            async with session.begin():
                await self._insert(session, order)
        return order

    async def create_in_transaction(self, tx: Transaction, order: Order) -> Order:
        """呼び出し側のトランザクション内で注文を作成する。commit は呼び出し側が行う。"""
        if not isinstance(tx, PostgresTransaction):
            raise TypeError(f"unsupported transaction type: {type(tx).__name__}")
        await self._insert(tx.session, order)
        return order

    async def update_status(self, order_id: str, status: str) -> None:
        key = parse_order_id(order_id)
        if key is None:
            raise NotFoundError("order", order_id)

        async with self._session_factory() as session:
            result = await session.execute(
                text("""
                    UPDATE orders
                    SET status = :status, updated_at = :now
                    WHERE id = :id
                """),
                {"id": key, "status": status, "now": datetime.now(timezone.utc)},
            )
            if result.rowcount == 0:
                await session.rollback()
                raise NotFoundError("order", order_id)
            await session.commit()

    async def _insert(self, session: AsyncSession, order: Order) -> None:
        now = datetime.now(timezone.utc)

        # 1. 注文行
        result = await session.execute(
            _INSERT_ORDER,
            {
                "user_id": order.user_id,
                "status": order.status,
                "subtotal": order.subtotal,
                "shipping": order.shipping,
                "total": order.total,
                "now": now,
            },
        )
        new_id = result.scalar_one()

        # 2. 明細行 (注文行の後に順番に)
        for item in order.items:
            await session.execute(
                _INSERT_ITEM,
                {
                    "order_id": new_id,
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "price": item.price,
                    "subtotal": item.subtotal,
                    "now": now,
                },
            )

        order.id = str(new_id)
        order.created_at = now
        order.updated_at = now
