"""Request/response helpers for the api/ serverless handlers."""

import asyncio
import json
from typing import Any, Awaitable, Callable, Iterable, Optional

from pydantic import BaseModel

from src.models.request_context import RequestContext
from src.utils.errors import MethodNotAllowedError, PipelinePulseError, ValidationError
from src.utils.logging import correlation_context, get_structured_logger
from src.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)

Operation = Callable[[RequestContext], Awaitable[Any]]


def _to_jsonable(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    if isinstance(payload, list):
        return [_to_jsonable(item) for item in payload]
    if isinstance(payload, dict):
        return {key: _to_jsonable(value) for key, value in payload.items()}
    return payload


def json_response(status_code: int, payload: Any, correlation_id: Optional[str] = None) -> dict:
    headers = {"Content-Type": "application/json"}
    if correlation_id:
        headers[LoggingConfig.LOG_CORRELATION_ID_HEADER] = correlation_id
    return {
        "statusCode": status_code,
        "headers": headers,
        "body": json.dumps(_to_jsonable(payload), default=str),
    }


def get_header(headers: Optional[dict], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    for key, value in (headers or {}).items():
        if key.lower() == name.lower():
            return value
    return None


def parse_body(request: dict) -> dict:
    """Decode the JSON body. Empty bodies are an empty dict."""
    raw = request.get("body")
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        body = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    return body


def build_context(request: dict, correlation_id: Optional[str]) -> RequestContext:
    query = request.get("query") or {}
    headers = request.get("headers") or {}
    body = parse_body(request)
    return RequestContext(
        method=(request.get("method") or "GET").upper(),
        actor_id=body.get("memberId") or query.get("memberId"),
        team_id=body.get("teamId") or query.get("teamId"),
        business_id=body.get("businessId") or query.get("businessId"),
        correlation_id=correlation_id,
        path_id=query.get("id"),
        query=query,
        body=body,
        headers={str(key): str(value) for key, value in headers.items()},
    )


def require_method(ctx: RequestContext, allowed: Iterable[str]) -> None:
    allowed = tuple(allowed)
    if ctx.method not in allowed:
        raise MethodNotAllowedError(f"Method {ctx.method} not allowed. Use {', '.join(allowed)}")


def run_handler(request: dict, operation: Operation, success_status: int = 200) -> dict:
    """
    Run an async operation for a serverless request.

    Sets up logging and the correlation ID, maps PipelinePulseError to its
    status code and anything else to a 500.
    """
    LoggingConfig.setup_logging()
    request = request or {}
    incoming_id = get_header(request.get("headers"), LoggingConfig.LOG_CORRELATION_ID_HEADER)

    with correlation_context(incoming_id) as correlation_id:
        try:
            ctx = build_context(request, correlation_id)
            logger.info("Request received", method=ctx.method, path_id=ctx.path_id)
            payload = asyncio.run(operation(ctx))
            return json_response(success_status, payload, correlation_id)
        except PipelinePulseError as e:
            log = logger.error if e.status_code >= 500 else logger.warning
            log("Request failed", error=str(e), error_type=type(e).__name__, status_code=e.status_code)
            return json_response(e.status_code, {"error": str(e)}, correlation_id)
        except Exception as e:
            logger.error("Unhandled error", error=str(e), exc_info=True)
            return json_response(500, {"error": "Internal server error"}, correlation_id)
