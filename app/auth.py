"""Service-to-service auth for journey endpoints.

Callers are the app backend and its write paths, never end users, so a
single shared key is enough. With JOURNEY_API_KEY unset every request
passes (local development).
"""

import hmac

from fastapi import HTTPException, Header

from app.config import settings


def presented_key(x_api_key: str | None, authorization: str | None) -> str | None:
    if x_api_key is not None:
        return x_api_key
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip()
    return None


async def verify_api_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    authorization: str | None = Header(default=None),
) -> str:
    expected = settings.journey_api_key
    if expected is None:
        return ""

    key = presented_key(x_api_key, authorization)
    if key is None or not hmac.compare_digest(key.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return key
