"""
Order Service — バリデーションエラーの整形

フレームワークやバリデーターの生のエラーメッセージはクライアントに返さない。
短く安全と判断できるものだけをそのまま返す。
"""

GENERIC_MESSAGE = "Invalid request"

_UNSAFE_MARKERS = (
    "validation",
    "Validation",
    "Input should",
    "input_value",
    "type=",
    "JSON",
    "Expecting",
    "loc",
    "Error:",
)


def sanitize_validation_error(message: str | None) -> str:
    if not message:
        return GENERIC_MESSAGE
    if any(marker in message for marker in _UNSAFE_MARKERS):
        return GENERIC_MESSAGE
    if len(message) < 100:
        return message
    return GENERIC_MESSAGE
