"""Middleware for HTTP request validation and authentication.

Provides helpers and decorators for Azure Functions HTTP triggers.
"""

import functools
import hmac
import json
import logging
from collections.abc import Callable
from typing import Any

import azure.functions as func

from config import ConfigurationError, get_config

logger = logging.getLogger(__name__)


class RequestValidationError(Exception):
    """Raised when an HTTP request body is unusable."""

    def __init__(self, reason: str, status_code: int = 400) -> None:
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)

    def to_response(self) -> func.HttpResponse:
        """Render as a JSON error response."""
        return _error_response(self.reason, status_code=self.status_code)


def read_json_object(req: func.HttpRequest) -> dict[str, Any]:
    """Decode the request body as a JSON object.

    Args:
        req: Incoming HTTP request.

    Returns:
        dict: Decoded body.

    Raises:
        RequestValidationError: If the body is empty, not JSON, or not an object.
    """
    if not req.get_body():
        raise RequestValidationError("Request body is empty")

    try:
        body = req.get_json()
    except ValueError:
        raise RequestValidationError("Invalid JSON in request body") from None

    if not isinstance(body, dict):
        raise RequestValidationError("Request body must be a JSON object")

    return body


def require_auth(
    api_key_header: str = "X-API-Key",
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator to require API key authentication.

    The expected key comes from the ``API_KEY`` setting. When it is not set
    the check is skipped (development).

    Args:
        api_key_header: Header name for API key.

    Returns:
        Decorated function.

    Example:
        @require_auth()
        async def generate_pdf_http(req: func.HttpRequest):
            ...
    """

    def decorator(func_handler: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func_handler)
        async def wrapper(req: func.HttpRequest, *args: Any, **kwargs: Any) -> Any:
            try:
                expected_key = get_config().api_key
            except ConfigurationError as e:
                logger.error(f"Configuration error: {e}")
                return _error_response(
                    "Service not configured",
                    status_code=500,
                    details={"code": "CONFIGURATION_ERROR", "missing": e.missing_vars},
                )

            if not expected_key:
                logger.warning("No API_KEY configured, skipping auth")
                return await func_handler(req, *args, **kwargs)

            provided_key = req.headers.get(api_key_header)

            if not provided_key:
                return _error_response(f"Missing {api_key_header} header", status_code=401)

            if not hmac.compare_digest(provided_key, expected_key):
                return _error_response("Invalid API key", status_code=403)

            return await func_handler(req, *args, **kwargs)

        return wrapper

    return decorator


def _error_response(
    error: str,
    status_code: int = 500,
    details: dict[str, Any] | None = None,
) -> func.HttpResponse:
    body: dict[str, Any] = {
        "status": "error",
        "error": error,
    }
    if details:
        body["details"] = details

    return func.HttpResponse(
        body=json.dumps(body, default=str),
        status_code=status_code,
        mimetype="application/json",
    )
