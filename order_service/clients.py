"""
Order Service — 下流サービスのクライアント

配送サービス (出荷状況の取得) とカートサービス (カートのクリア) を呼び出す。
どちらも起動時に作った httpx.AsyncClient を使い回す。タイムアウトは短く固定する。

失敗はすべて DownstreamError に変換する。ただし出荷情報の 404 は
「まだ出荷されていない」という意味なので None を返す。
"""

import httpx
from pydantic import ValidationError

from .errors import DownstreamError
from .models import Shipment


def build_http_client(base_url: str, timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)


class ShippingClient:
    """配送サービスのクライアント"""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def get_shipment_by_order_id(self, order_id: str) -> Shipment | None:
        try:
            resp = await self.http.get(f"/orders/{order_id}")
        except httpx.HTTPError as e:
            raise DownstreamError("shipping", f"request failed: {e!r}") from e

        if resp.status_code == 404:
            # まだ出荷されていない。エラーではない
            return None
        if resp.status_code != 200:
            raise DownstreamError("shipping", f"returned status {resp.status_code}")

        try:
            return Shipment.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise DownstreamError("shipping", f"invalid response body: {e}") from e

    async def aclose(self) -> None:
        await self.http.aclose()


class CartClient:
    """カートサービスのクライアント"""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def clear_cart(self, authorization: str | None) -> None:
        """
        認証済みユーザーのカートを空にする。

        カートサービスは Authorization ヘッダーでユーザーを識別するため、
        元のリクエストのヘッダーをそのまま転送する。
        """
        headers = {"Authorization": authorization} if authorization else {}
        try:
            resp = await self.http.delete("/cart", headers=headers)
        except httpx.HTTPError as e:
            raise DownstreamError("cart", f"request failed: {e!r}") from e

        if not resp.is_success:
            raise DownstreamError("cart", f"returned status {resp.status_code}")

    async def aclose(self) -> None:
        await self.http.aclose()
