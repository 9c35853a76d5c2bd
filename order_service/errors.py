"""
Order Service — 例外定義

ストア層の NotFoundError とサービス層の OrderNotFoundError は別物。
ストアの例外はサービス層でドメインの例外に変換し、
HTTP 層がストアの詳細を直接見ることはない。
"""


class OrderServiceError(Exception):
    """このサービスの全例外の基底クラス"""


class ConfigError(OrderServiceError):
    """起動時の設定が不足・不正"""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("invalid configuration: " + "; ".join(problems))


# ── ストア層 ─────────────────────────────────────


class NotFoundError(OrderServiceError):
    """指定したリソースがストアに存在しない"""

    def __init__(self, resource: str, key: str):
        self.resource = resource
        self.key = key
        super().__init__(f"{resource} not found: {key}")


# ── サービス層 ───────────────────────────────────


class OrderNotFoundError(OrderServiceError):
    """注文が存在しない (HTTP 404)"""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"order not found: {order_id}")


class InvalidOrderError(OrderServiceError):
    """注文内容が不正 (HTTP 400)"""


class UnauthorizedError(OrderServiceError):
    """認証済みのユーザー ID がリクエストに紐付いていない (HTTP 401)"""


# ── 下流サービス ─────────────────────────────────


class DownstreamError(OrderServiceError):
    """配送サービス・カートサービスの呼び出し失敗"""

    def __init__(self, service: str, reason: str):
        self.service = service
        self.reason = reason
        super().__init__(f"{service} service call failed: {reason}")
