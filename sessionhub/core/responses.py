from typing import Any


def success(*, message: str | None = None, token: str | None = None, data: Any = None) -> dict:
    body: dict[str, Any] = {'status': 'success'}
    if message is not None:
        body['message'] = message
    if token is not None:
        body['token'] = token
    if data is not None:
        body['data'] = data
    return body
