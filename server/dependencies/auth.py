import hmac

from fastapi import Header, Request

from shared.models.errors import Unauthorized


async def verify_api_key(request: Request, x_api_key: str | None = Header(default=None)) -> None:
    """Verify the X-Api-Key header against the configured API key.

    Args:
        request (Request): The FastAPI request object (provides app.state).
        x_api_key (str | None): The value of the X-Api-Key header.

    Raises:
        Unauthorized: 401 if the key is missing or does not match.
    """
    helper_config = request.app.state.helper_config
    expected_key = helper_config.get_string_val("API_SERVER_API_KEY")
    if not x_api_key or not hmac.compare_digest(x_api_key, expected_key):
        raise Unauthorized("Invalid or missing API key.")


async def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Resolve the calling user from the X-User-Id header set by the auth gateway.

    Raises:
        Unauthorized: 401 if no user identity was forwarded.
    """
    if not x_user_id or not x_user_id.strip():
        raise Unauthorized("Missing caller identity (X-User-Id).")
    return x_user_id.strip()
