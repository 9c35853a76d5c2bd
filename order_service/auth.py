"""
Order Service — 認証済みユーザーの取り出し

認証そのものはこのサービスの前段 (API ゲートウェイ) が行う。
ゲートウェイはトークンを検証したうえで、信頼できるヘッダーに
ユーザー ID を載せて転送してくる。

bind_identity ミドルウェアがそのヘッダーを request.state.user_id に結び付け、
ハンドラは require_user_id でそれを取り出す。
リクエストボディの user_id は決して信用しない。
"""

from fastapi import Request

from .errors import UnauthorizedError

DEFAULT_USER_HEADER = "X-User-ID"


async def bind_identity(request: Request, call_next):
    header = getattr(request.app.state, "identity_header", DEFAULT_USER_HEADER)
    user_id = request.headers.get(header, "").strip()
    request.state.user_id = user_id or None
    return await call_next(request)


def require_user_id(request: Request) -> str:
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise UnauthorizedError("authentication required")
    return user_id
