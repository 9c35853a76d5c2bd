"""
Order Service — リポジトリとトランザクションの抽象

サービス層はこのインターフェースだけに依存する。
PostgreSQL 実装は store.py、テスト用のインメモリ実装は tests/conftest.py にある。

トランザクションは async with で使う:

    async with tx_manager.begin() as tx:
        await repo.create_in_transaction(tx, order)
        await tx.commit()

commit() せずにブロックを抜けた場合 (例外・キャンセルを含む) は必ずロールバックされる。
"""

from abc import ABC, abstractmethod

from .models import Order


class Transaction(ABC):
    """データベーストランザクション"""

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...

    @abstractmethod
    async def __aenter__(self) -> "Transaction": ...

    @abstractmethod
    async def __aexit__(self, exc_type, exc, tb) -> None: ...


class TransactionManager(ABC):
    @abstractmethod
    def begin(self) -> Transaction:
        """未開始のトランザクションを返す。async with に入った時点で開始する。"""


class OrderRepository(ABC):
    """注文集約の永続化"""

    @abstractmethod
    async def find_by_id(self, order_id: str) -> Order:
        """存在しなければ NotFoundError"""

    @abstractmethod
    async def find_by_user(self, user_id: str) -> list[Order]:
        """新しい順。注文がなければ空リスト"""

    @abstractmethod
    async def create(self, order: Order) -> Order: ...

    @abstractmethod
    async def create_in_transaction(self, tx: Transaction, order: Order) -> Order: ...

    @abstractmethod
    async def update_status(self, order_id: str, status: str) -> None:
        """更新対象がなければ NotFoundError"""
